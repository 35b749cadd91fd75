"""Entry-point for launching the console player."""
from __future__ import annotations

import argparse
from pathlib import Path
from typing import Sequence

from .core.logger import setup_logging
from .domain.settings import clamp_unit
from .presentation.cli.app import play, validate
from .presentation.cli.config import load_config


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="storyloom", description="Play a story graph in the terminal.")
    parser.add_argument("story", type=Path, help="path to a story graph JSON document")
    parser.add_argument("--config", type=Path, default=None, help="player settings file to use")
    parser.add_argument("--save-dir", type=Path, default=None, help="directory for save slots")
    parser.add_argument("--text-speed", type=float, default=None, help="reveal speed from 0 to 1")
    parser.add_argument("--validate", action="store_true", help="only validate the story and exit")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
    )
    parser.add_argument("--log-file", type=Path, default=None)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the CLI presentation layer."""
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level, args.log_file)
    if args.validate:
        return validate(args.story)
    settings = load_config(args.config)
    if args.text_speed is not None:
        settings.text_speed = clamp_unit(args.text_speed)
    return play(args.story, settings=settings, save_dir=args.save_dir)


if __name__ == "__main__":
    raise SystemExit(main())
