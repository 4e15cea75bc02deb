"""Command-line entry point: ``python -m sdx <command> [args...]``."""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from sdx.config import SdxConfig
from sdx.dispatcher import Dispatcher, OutcomeKind
from sdx.errors import PluginSignatureError, UnknownCommandError


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sdx", description="Run SDX plugin scripts as sub-commands.")
    parser.add_argument("--plugin-dir", type=Path, help="Directory containing plugin scripts")
    parser.add_argument("--list", action="store_true", help="List available commands and exit")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("command", nargs="?", help="Sub-command to run")
    parser.add_argument("args", nargs=argparse.REMAINDER, help="Arguments passed to the sub-command")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    options = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if options.verbose else logging.INFO,
        format="[%(asctime)s] %(levelname)s: %(message)s",
    )

    config = SdxConfig.from_env()
    if options.plugin_dir is not None:
        config = replace(config, plugin_dir=options.plugin_dir)
    dispatcher = Dispatcher.from_config(config)

    if options.list or not options.command:
        for name in dispatcher.names():
            print(name)
        return 0

    try:
        outcome = dispatcher.run(options.command, options.args)
    except (UnknownCommandError, PluginSignatureError) as exc:
        print(str(exc), file=sys.stderr)
        return 2

    if outcome.text:
        stream = sys.stdout if outcome.succeeded else sys.stderr
        print(outcome.text, file=stream)
    if outcome.kind is OutcomeKind.EXIT:
        return int(outcome.exit_code or 0)
    return 0 if outcome.succeeded else 1


if __name__ == "__main__":
    sys.exit(main())
