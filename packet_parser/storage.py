"""
Pool Storage
============
Persists a QuestionPool to a directory and loads it back.

Directory Layout:
    <pool_dir>/
    ├── pool.json          # Question metadata, subject order preserved
    └── images/
        └── {question_id}.png
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional, Union

from PIL import Image

from . import __version__
from .models import Question
from .pool import QuestionPool

logger = logging.getLogger(__name__)

POOL_FILE = "pool.json"
IMAGES_DIR = "images"


def save_pool(pool: QuestionPool, directory: Union[str, Path]) -> Path:
    """
    Write every question of ``pool`` to ``directory``.
    Returns the path of the written pool.json.
    """
    root = Path(directory)
    image_dir = root / IMAGES_DIR
    image_dir.mkdir(parents=True, exist_ok=True)

    entries = []
    for q in pool.all_questions():
        entry = q.model_dump(mode="json")
        entry["image_file"] = None
        if q.image is not None:
            filename = f"{_sanitize_name(q.id)}.png"
            q.image.save(image_dir / filename, format="PNG")
            entry["image_file"] = f"{IMAGES_DIR}/{filename}"
        entries.append(entry)

    pool_file = root / POOL_FILE
    with open(pool_file, "w", encoding="utf-8") as f:
        json.dump(
            {"version": __version__, "questions": entries},
            f,
            indent=2,
            ensure_ascii=False,
        )
    logger.info(f"Saved {len(entries)} questions to {pool_file}")
    return pool_file


def load_pool(
    directory: Union[str, Path],
    into: Optional[QuestionPool] = None,
) -> QuestionPool:
    """
    Load a saved pool. Questions whose id is already in ``into`` are
    skipped, so loading the same directory twice is harmless.

    Raises:
        FileNotFoundError: If the directory has no pool.json.
    """
    root = Path(directory)
    pool_file = root / POOL_FILE
    if not pool_file.exists():
        raise FileNotFoundError(f"No pool found at: {pool_file}")

    with open(pool_file, "r", encoding="utf-8") as f:
        data = json.load(f)

    pool = into if into is not None else QuestionPool()
    loaded = 0
    for entry in data.get("questions", []):
        image_file = entry.pop("image_file", None)
        image = _load_image(root / image_file) if image_file else None
        question = Question.model_validate({**entry, "image": image})
        if question.id in pool:
            logger.debug(f"Question already loaded: {question.id}")
            continue
        pool.add(question)
        loaded += 1

    logger.info(f"Loaded {loaded} questions from {pool_file}")
    return pool


def pool_exists(directory: Union[str, Path]) -> bool:
    return (Path(directory) / POOL_FILE).exists()


# ─── Helpers ──────────────────────────────────────────────────────────────────


def _load_image(path: Path) -> Optional[Image.Image]:
    if not path.exists():
        logger.warning(f"Image missing for pool entry: {path}")
        return None
    with Image.open(path) as img:
        img.load()
        return img.copy()


def _sanitize_name(name: str) -> str:
    """Sanitize a name for filesystem use."""
    return "".join(
        c if c.isalnum() or c in "-_" else "_"
        for c in name
    )
