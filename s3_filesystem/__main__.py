"""Command line entry point for the S3 filesystem adapter."""
from __future__ import annotations

import argparse
import logging
import sys
from typing import Callable, Optional, Sequence

from .adapter import S3FilesystemAdapter
from .errors import StorageError
from .models import NormalizedEntry
from .settings import SettingsStorage

LOGGER = logging.getLogger(__name__)


def _format_entry(entry: NormalizedEntry) -> str:
    if entry.is_dir:
        return f"{'DIR':>12}  {entry.path}/"
    size = "-" if entry.size_bytes is None else str(entry.size_bytes)
    modified = entry.last_modified_at.isoformat() if entry.last_modified_at else "-"
    return f"{size:>12}  {entry.path}  {modified}"


def _write_bytes(contents: bytes) -> None:
    buffer = getattr(sys.stdout, "buffer", None)
    if buffer is None:
        sys.stdout.write(contents.decode("utf-8", errors="replace"))
    else:
        sys.stdout.flush()
        buffer.write(contents)
        buffer.flush()
    sys.stdout.flush()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pys3fs", description=__doc__)
    parser.add_argument("--config", help="Path to the JSON settings file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    ls_cmd = commands.add_parser("ls", help="List a directory")
    ls_cmd.add_argument("directory", nargs="?", default="")
    ls_cmd.add_argument("-r", "--recursive", action="store_true")

    cat_cmd = commands.add_parser("cat", help="Print an object to stdout")
    cat_cmd.add_argument("path")

    rm_cmd = commands.add_parser("rm", help="Delete an object")
    rm_cmd.add_argument("path")

    rmdir_cmd = commands.add_parser("rmdir", help="Delete a directory and everything below it")
    rmdir_cmd.add_argument("dirname")

    url_cmd = commands.add_parser("url", help="Print a temporary signed URL")
    url_cmd.add_argument("path")
    url_cmd.add_argument("--ttl", type=int, default=600, help="Lifetime in seconds")
    return parser


def main(
    argv: Optional[Sequence[str]] = None,
    *,
    adapter_factory: Callable[[argparse.Namespace], S3FilesystemAdapter] | None = None,
) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    factory = adapter_factory or (
        lambda ns: S3FilesystemAdapter.from_settings(SettingsStorage(ns.config).load())
    )
    try:
        adapter = factory(args)
        if args.command == "ls":
            for entry in adapter.list_contents(args.directory, recursive=args.recursive):
                print(_format_entry(entry))
        elif args.command == "cat":
            contents = adapter.read(args.path)
            _write_bytes(contents)
        elif args.command == "rm":
            adapter.delete(args.path)
        elif args.command == "rmdir":
            count = adapter.delete_dir(args.dirname)
            print(f"Deleted {count} key(s)")
        elif args.command == "url":
            print(adapter.get_signed_url(args.path, timeout=args.ttl))
    except (StorageError, ValueError) as exc:
        LOGGER.debug("Command '%s' failed", args.command, exc_info=True)
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
