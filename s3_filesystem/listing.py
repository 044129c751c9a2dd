from __future__ import annotations
"""Paginated listing, entry normalization and directory emulation.

A flat object-storage namespace is presented as a tree in three steps:
:class:`RecursiveLister` pages through a prefix (and optionally every
sub-prefix it discovers), :func:`normalize_entry` turns each raw entry into a
:class:`~s3_filesystem.models.NormalizedEntry`, and
:func:`emulate_directories` adds the directory entries implied by the keys.
"""
from dataclasses import replace
import logging
from typing import Callable, Iterable, Optional, Protocol, Union

from .errors import ListingCancelledError, ListingFailed, StorageError
from .models import (
    DELIMITER,
    EntryType,
    ListingPage,
    ListingRequest,
    ListingResult,
    NormalizedEntry,
    RawEntry,
    RawPrefix,
)

LOGGER = logging.getLogger(__name__)

# RawEntry attribute -> NormalizedEntry field
RESULT_FIELD_MAP = {
    "size_bytes": "size_bytes",
    "last_modified": "last_modified_at",
    "storage_class": "storage_class",
}


class ListingClient(Protocol):
    def list_page(
        self,
        bucket: str,
        prefix: str,
        delimiter: str,
        page_size: int,
        continuation_token: Optional[str] = None,
    ) -> ListingPage:
        ...


class RecursiveLister:
    """Flattens a paginated delimiter listing into a single result."""

    def __init__(
        self,
        client: ListingClient,
        *,
        cancel_requested: Optional[Callable[[], bool]] = None,
    ):
        self._client = client
        self._cancel_requested = cancel_requested

    def list(self, request: ListingRequest) -> list[RawEntry]:
        return self.walk(request).objects

    def walk(self, request: ListingRequest) -> ListingResult:
        """Return every object (and prefix) found under ``request.start_prefix``.

        Raises:
            ListingFailed: when any page fetch fails; nothing is returned.
            ListingCancelledError: when ``cancel_requested`` returns true.
        """
        result = ListingResult()
        pending = [request.start_prefix]
        while pending:
            prefix = pending.pop()
            discovered = self._list_prefix(request, prefix, result)
            if request.recursive:
                # reversed so sibling prefixes are walked in listing order
                pending.extend(reversed(discovered))
        LOGGER.debug(
            "Listed '%s' in bucket '%s': %d object(s), %d prefix(es)",
            request.start_prefix,
            request.bucket,
            len(result.objects),
            len(result.prefixes),
        )
        return result

    def _list_prefix(
        self,
        request: ListingRequest,
        prefix: str,
        result: ListingResult,
    ) -> list[str]:
        discovered: list[str] = []
        token: Optional[str] = ""
        page_number = 1
        while True:
            self._check_cancelled(prefix)
            try:
                page = self._client.list_page(
                    request.bucket,
                    prefix,
                    request.delimiter,
                    request.page_size,
                    token or None,
                )
            except StorageError as exc:
                LOGGER.debug("Listing page %d of '%s' failed", page_number, prefix)
                raise ListingFailed(
                    f"Listing '{prefix}' in bucket '{request.bucket}' failed: {exc}",
                    path=prefix,
                ) from exc

            for entry in page.object_entries:
                if entry.prefix != prefix:
                    entry = replace(entry, prefix=prefix)
                result.objects.append(entry)
            for common in page.prefix_entries:
                result.prefixes.append(common)
                discovered.append(common.prefix)

            LOGGER.debug(
                "Page %d of '%s': %d object(s), %d prefix(es)",
                page_number,
                prefix,
                len(page.object_entries),
                len(page.prefix_entries),
            )
            token = page.next_token
            if not token:
                break
            page_number += 1
        return discovered

    def _check_cancelled(self, prefix: str) -> None:
        if self._cancel_requested and self._cancel_requested():
            raise ListingCancelledError("Listing cancelled by user", path=prefix)


def remove_prefix(key: str, strip_prefix: str) -> str:
    if strip_prefix and key.startswith(strip_prefix):
        return key[len(strip_prefix):]
    return key


def parent_of(path: str, delimiter: str = DELIMITER) -> str:
    parent, _, _ = path.rpartition(delimiter)
    return parent


def normalize_entry(
    entry: Union[RawEntry, RawPrefix],
    strip_prefix: str = "",
    delimiter: str = DELIMITER,
) -> NormalizedEntry:
    """Map a raw listing entry onto a :class:`NormalizedEntry`.

    Fields missing from the raw entry stay ``None`` instead of being
    defaulted, so "unknown" and "zero" remain distinguishable.
    """
    if isinstance(entry, RawPrefix):
        source = entry.prefix
    else:
        source = entry.key
    path = remove_prefix(source, strip_prefix)

    if isinstance(entry, RawPrefix) or path.endswith(delimiter):
        if path.endswith(delimiter):
            path = path[:-len(delimiter)]
        return NormalizedEntry(
            path=path,
            parent_dir=parent_of(path, delimiter),
            type=EntryType.DIRECTORY,
        )

    values = {}
    for raw_name, normalized_name in RESULT_FIELD_MAP.items():
        value = getattr(entry, raw_name, None)
        if value is not None:
            values[normalized_name] = value
    return NormalizedEntry(
        path=path,
        parent_dir=parent_of(path, delimiter),
        type=EntryType.FILE,
        **values,
    )


def emulate_directories(
    entries: Iterable[NormalizedEntry],
    delimiter: str = DELIMITER,
) -> list[NormalizedEntry]:
    """Add the directory entries implied by each entry's parent path.

    Directories already present in ``entries`` are never duplicated, which
    makes the function idempotent.
    """
    listing = list(entries)
    seen = {entry.path for entry in listing if entry.is_dir}
    result: list[NormalizedEntry] = []
    for entry in listing:
        ancestors: list[NormalizedEntry] = []
        parent = entry.parent_dir
        while parent and parent not in seen:
            seen.add(parent)
            grandparent = parent_of(parent, delimiter)
            ancestors.append(
                NormalizedEntry(path=parent, parent_dir=grandparent, type=EntryType.DIRECTORY)
            )
            parent = grandparent
        result.extend(reversed(ancestors))
        result.append(entry)
    return result


def sort_entries(
    entries: Iterable[NormalizedEntry],
    delimiter: str = DELIMITER,
) -> list[NormalizedEntry]:
    """Order entries so parents always come before their children."""
    return sorted(entries, key=lambda entry: (entry.path.count(delimiter), entry.path))
