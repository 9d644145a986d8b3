"""Command-line entrypoint."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import TextIO

from repo_chunker.config import CliOverrides, ConfigurationError, load_effective_config
from repo_chunker.index.merkle import diff_trees, load_tree_file
from repo_chunker.pipeline import IndexManager, IndexSchemaUnsupportedError
from repo_chunker.security import WorkspaceError

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


def build_arg_parser() -> argparse.ArgumentParser:
    """Build argument parser for indexing runs."""
    parser = argparse.ArgumentParser(
        prog="repo-chunker",
        description="Index a source tree into bounded, addressable chunks.",
    )
    parser.add_argument("--repo-root", required=False, default=".")
    parser.add_argument("--data-dir", required=False, default=None)
    parser.add_argument(
        "--ext",
        action="append",
        dest="extensions",
        default=None,
        help="File extension to include; repeat for several.",
    )
    parser.add_argument("--max-file-bytes", type=int, required=False, default=None)
    parser.add_argument("--concurrent", action="store_true", default=None)
    parser.add_argument("--max-workers", type=int, required=False, default=None)
    parser.add_argument("--force", action="store_true", help="Re-read and re-chunk every file.")
    parser.add_argument(
        "--status", action="store_true", help="Print the persisted index status and exit."
    )
    parser.add_argument(
        "--diff",
        nargs=2,
        metavar=("OLD", "NEW"),
        default=None,
        help="Print the file changes between two persisted tree files and exit.",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
    )
    return parser


def _emit(payload: object, out_stream: TextIO) -> None:
    out_stream.write(json.dumps(payload, indent=2, sort_keys=True))
    out_stream.write("\n")


def _run_diff(old_path: str, new_path: str, out_stream: TextIO) -> int:
    old_tree = load_tree_file(Path(old_path))
    new_tree = load_tree_file(Path(new_path))
    changes = [
        {
            "path": change.path,
            "kind": str(change.kind),
            "old_hash": change.old_hash,
            "new_hash": change.new_hash,
        }
        for change in diff_trees(old_tree, new_tree)
    ]
    _emit({"changes": changes, "count": len(changes)}, out_stream)
    return EXIT_OK


def main(argv: list[str] | None = None, out_stream: TextIO | None = None) -> int:
    """Entrypoint for the repo-chunker command."""
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    stream = out_stream or sys.stdout
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if args.diff is not None:
        try:
            return _run_diff(args.diff[0], args.diff[1], stream)
        except (OSError, ValueError, KeyError) as error:
            logger.error("Cannot diff trees: %s", error)
            return EXIT_FAILURE

    overrides = CliOverrides(
        data_dir=Path(args.data_dir).resolve() if args.data_dir is not None else None,
        include_extensions=tuple(args.extensions) if args.extensions else None,
        max_file_bytes=args.max_file_bytes,
        concurrent=args.concurrent,
        max_workers=args.max_workers,
    )
    try:
        config = load_effective_config(Path(args.repo_root), overrides)
        manager = IndexManager(config)
        if args.status:
            _emit(asdict(manager.status()), stream)
            return EXIT_OK
        summary = manager.refresh(force=args.force)
    except ConfigurationError as error:
        logger.error("Invalid configuration: %s", error)
        return EXIT_USAGE
    except WorkspaceError as error:
        logger.error("%s %s", error.reason, error.hint)
        return EXIT_USAGE
    except IndexSchemaUnsupportedError as error:
        logger.error("%s Run again with --force to rebuild the index.", error)
        return EXIT_USAGE
    except (OSError, KeyError, TypeError, ValueError) as error:
        logger.error("Cannot refresh index: %s", error)
        return EXIT_FAILURE
    _emit(summary, stream)
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
