"""
Module entry point for: python -m packet_parser

Allows running the parser directly as a module:
    python -m packet_parser parse <pdf_path> [options]
    python -m packet_parser generate <pool_dir> [options]
    python -m packet_parser info <pdf_path>
"""

from .cli import cli


def main():
    cli()


if __name__ == "__main__":
    main()
