"""Command-line entrypoint for the downcraft PDF to Markdown converter."""

from __future__ import annotations

from .processor import build_parser, main, run_from_cli

__all__ = ["build_parser", "main", "run_from_cli"]
