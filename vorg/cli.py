#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
vorg: import media into a repository and check it for drift.

Examples:
  vorg import ~/Archive ~/Downloads/clip.mp4     # one file
  vorg import ~/Archive ~/Downloads/camera       # a whole folder (best effort)
  vorg check ~/Archive                           # db vs store report on stderr
  vorg list ~/Archive                            # items with their tags
  vorg serve ~/Archive                           # read-only HTTP view

Settings come from vorg.toml (see vorg/core/config.py); --config overrides
the lookup.
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from vorg.core.config import Settings, load_settings
from vorg.core.errors import ErrorKind, VorgError, WrongArgumentsError
from vorg.core.logs import setup_logging
from vorg.services.repo import Repository


class _Parser(argparse.ArgumentParser):
    """argparse that reports misuse as WrongArgumentsError instead of exiting."""
    def error(self, message: str):
        raise WrongArgumentsError(message)


# ------- tiny table printer -------

def _stringify(x) -> str:
    if x is None:
        return ""
    return str(x)


def print_table(headers: Sequence[str], rows: Sequence[Sequence[object]]) -> None:
    widths = [len(h) for h in headers]
    srows = []
    for row in rows:
        srow = [_stringify(v) for v in row]
        srows.append(srow)
        for i, v in enumerate(srow):
            widths[i] = max(widths[i], len(v))

    def fmt_row(vals):
        return "  " + " | ".join(v.ljust(widths[i]) for i, v in enumerate(vals))

    print(fmt_row(headers))
    print("  " + "-+-".join("-" * w for w in widths))
    for r in srows:
        print(fmt_row(r))


# ------- commands -------

def cmd_import(repo: Repository, args, settings: Settings) -> int:
    stats = repo.import_path(Path(args.path))
    print(f"Imported {args.path}: {stats.summary()}")
    return 0


def cmd_check(repo: Repository, args, settings: Settings) -> int:
    report = repo.check_data_integrity()
    sys.stderr.write(report)
    return 1 if report else 0


def cmd_list(repo: Repository, args, settings: Settings) -> int:
    rows = [
        (i.hash, i.ext, i.title, ", ".join(sorted(i.tags)))
        for i in repo.list_items()
    ]
    print_table(["hash", "ext", "title", "tags"], rows)
    return 0


def cmd_serve(repo: Repository, args, settings: Settings) -> int:
    import uvicorn
    from vorg.main import create_app

    repo.close()
    uvicorn.run(create_app(repo.path), host=args.host or settings.host, port=args.port or settings.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    ap = _Parser(prog="vorg", description="vorg: personal media archive")
    ap.add_argument("--config", help="Path to vorg.toml (default: VORG_CONFIG or nearest vorg.toml)")
    ap.add_argument("--logs-dir", default=None, help="Write log files here (default from config; none)")
    ap.add_argument("--log-level", default=None, choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
                    help="Force console log level (overrides -v/-q)")
    ap.add_argument("-v", "--verbose", action="count", default=0, help="Increase console verbosity")
    ap.add_argument("-q", "--quiet", action="store_true", help="Minimal console output")
    ap.add_argument("--json-logs", action="store_true", help="Write JSON-formatted logs to the log file")
    sub = ap.add_subparsers(dest="cmd", parser_class=_Parser)

    spi = sub.add_parser("import", help="Import a file or folder (files are MOVED into the store)")
    spi.add_argument("repo")
    spi.add_argument("path")
    spi.set_defaults(func=cmd_import)

    spc = sub.add_parser("check", help="Report drift between vorg.db and the store")
    spc.add_argument("repo")
    spc.set_defaults(func=cmd_check)

    spl = sub.add_parser("list", help="List items with their tags")
    spl.add_argument("repo")
    spl.set_defaults(func=cmd_list)

    sps = sub.add_parser("serve", help="Serve collections over HTTP")
    sps.add_argument("repo")
    sps.add_argument("--host", default=None)
    sps.add_argument("--port", type=int, default=None)
    sps.set_defaults(func=cmd_serve)
    return ap


def run(argv: Optional[List[str]] = None) -> int:
    """Parse `argv` and run one command. Raises VorgError on failure."""
    args = build_parser().parse_args(argv)
    if not getattr(args, "func", None):
        raise WrongArgumentsError("missing command")

    settings = load_settings(Path(args.config) if args.config else None)
    setup_logging(
        logs_dir=Path(args.logs_dir) if args.logs_dir else settings.logs_dir,
        verbose=args.verbose,
        quiet=args.quiet,
        log_level=args.log_level or settings.log_level,
        json_logs=args.json_logs or settings.json_logs,
    )

    repo = Repository.open(Path(args.repo), settings=settings)
    try:
        return args.func(repo, args, settings)
    finally:
        repo.close()


def main() -> None:
    try:
        code = run()
    except VorgError as e:
        sys.stderr.write(f"{e}\n")
        code = 2 if e.kind is ErrorKind.WRONG_ARGUMENTS else 1
    sys.exit(code)


if __name__ == "__main__":
    main()
