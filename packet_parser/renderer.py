"""
Document Renderer
=================
Produces, per page, the positioned text tokens and a full-page raster
using PyMuPDF (fitz).

PyMuPDF reports text with a top-left origin; tokens are converted to
document coordinates (y grows upward) so that the rest of the pipeline
works in a single convention.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, Union

import fitz  # PyMuPDF
from PIL import Image

from .models import Token

logger = logging.getLogger(__name__)

DEFAULT_SCALE = 2.0

Source = Union[str, Path, bytes]


class DocumentReadError(RuntimeError):
    """The document could not be read at all."""


class PageRenderError(RuntimeError):
    """A single page could not be rendered."""


@dataclass
class RenderedPage:
    """Tokens and raster of one page."""
    page_number: int
    tokens: list[Token]
    image: Image.Image
    scale: float


class RenderedDocument(Protocol):
    page_count: int

    def render_page(self, index: int) -> RenderedPage: ...

    def close(self): ...


class DocumentRenderer(Protocol):
    def open(self, source: Source) -> RenderedDocument: ...


class PyMuPDFDocument:
    """An open PDF. Not thread-safe: callers serialize render_page."""

    def __init__(self, doc: fitz.Document, scale: float):
        self._doc = doc
        self.scale = scale
        self.page_count = doc.page_count

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self):
        if not self._doc.is_closed:
            self._doc.close()

    @property
    def metadata(self) -> dict:
        return self._doc.metadata or {}

    def page_tokens(self, index: int) -> list[Token]:
        """Text spans of a page in rendering order."""
        page = self._load(index)
        return self._extract_tokens(page)

    def render_page(self, index: int) -> RenderedPage:
        """
        Render one page (0-indexed).

        Raises:
            PageRenderError: If PyMuPDF fails on this page.
        """
        page = self._load(index)
        try:
            tokens = self._extract_tokens(page)
            matrix = fitz.Matrix(self.scale, self.scale)
            pix = page.get_pixmap(matrix=matrix, alpha=False)
            image = Image.frombytes("RGB", (pix.width, pix.height), pix.samples)
        except Exception as e:
            raise PageRenderError(f"Failed rendering page {index + 1}: {e}") from e

        return RenderedPage(
            page_number=index + 1,
            tokens=tokens,
            image=image,
            scale=self.scale,
        )

    def _load(self, index: int) -> fitz.Page:
        try:
            return self._doc[index]
        except Exception as e:
            raise PageRenderError(f"Failed loading page {index + 1}: {e}") from e

    def _extract_tokens(self, page: fitz.Page) -> list[Token]:
        page_height = page.rect.height
        tokens: list[Token] = []

        page_dict = page.get_text("dict")
        for block in page_dict.get("blocks", []):
            if block.get("type") != 0:  # Text only
                continue
            for line in block.get("lines", []):
                for span in line.get("spans", []):
                    text = span.get("text", "")
                    if not text.strip():
                        continue
                    x, baseline = span["origin"]
                    tokens.append(Token(
                        text=text,
                        x=x,
                        y=page_height - baseline,
                    ))
        return tokens


class PyMuPDFRenderer:
    """Opens PDFs from a path or an in-memory byte stream."""

    def __init__(self, scale: float = DEFAULT_SCALE):
        self.scale = scale

    def open(self, source: Source) -> PyMuPDFDocument:
        """
        Open a document for rendering.

        Raises:
            FileNotFoundError: If a path source doesn't exist.
            DocumentReadError: If PyMuPDF cannot open the document.
        """
        try:
            if isinstance(source, (bytes, bytearray)):
                doc = fitz.open(stream=bytes(source), filetype="pdf")
            else:
                path = Path(source)
                if not path.exists():
                    raise FileNotFoundError(f"PDF not found: {path}")
                doc = fitz.open(str(path))
        except FileNotFoundError:
            raise
        except Exception as e:
            raise DocumentReadError(f"Cannot open document: {e}") from e

        logger.info(f"Opened document with {doc.page_count} pages")
        return PyMuPDFDocument(doc, self.scale)


def source_name(source: Source, default: Optional[str] = None) -> str:
    """Human-readable name of a source for labels and ids."""
    if default:
        return default
    if isinstance(source, (bytes, bytearray)):
        return "document.pdf"
    return Path(source).name
