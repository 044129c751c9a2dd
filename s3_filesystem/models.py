from __future__ import annotations
"""Data models representing object listings and metadata."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

DEFAULT_PAGE_SIZE = 100
DELIMITER = "/"


class EntryType(str, Enum):
    FILE = "file"
    DIRECTORY = "dir"


class Visibility(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


@dataclass(frozen=True)
class RawEntry:
    """A single remote object as returned by a listing call."""

    key: str
    last_modified: Optional[datetime] = None
    etag: Optional[str] = None
    size_bytes: Optional[int] = None
    storage_class: Optional[str] = None
    prefix: str = ""


@dataclass(frozen=True)
class RawPrefix:
    """A common prefix ("directory") discovered through the delimiter."""

    prefix: str


@dataclass(frozen=True)
class ListingPage:
    """Represents a single page of a delimiter listing."""

    object_entries: tuple[RawEntry, ...] = ()
    prefix_entries: tuple[RawPrefix, ...] = ()
    next_token: Optional[str] = None


@dataclass(frozen=True)
class ListingRequest:
    bucket: str
    start_prefix: str = ""
    recursive: bool = False
    page_size: int = DEFAULT_PAGE_SIZE
    delimiter: str = DELIMITER

    def __post_init__(self) -> None:
        if self.page_size <= 0:
            raise ValueError("page_size must be greater than zero")
        if not self.delimiter:
            raise ValueError("delimiter cannot be empty")


@dataclass
class ListingResult:
    """Flattened outcome of a (possibly recursive) listing."""

    objects: list[RawEntry] = field(default_factory=list)
    prefixes: list[RawPrefix] = field(default_factory=list)


@dataclass(frozen=True)
class NormalizedEntry:
    """Filesystem-style view of an object or directory."""

    path: str
    parent_dir: str = ""
    type: EntryType = EntryType.FILE
    size_bytes: Optional[int] = None
    mime_type: Optional[str] = None
    last_modified_at: Optional[datetime] = None
    storage_class: Optional[str] = None

    @property
    def is_file(self) -> bool:
        return self.type is EntryType.FILE

    @property
    def is_dir(self) -> bool:
        return self.type is EntryType.DIRECTORY


@dataclass
class ObjectDetails:
    """Metadata about a single stored object."""

    bucket: str
    key: str
    size: Optional[int] = None
    last_modified: Optional[datetime] = None
    storage_class: Optional[str] = None
    etag: Optional[str] = None
    content_type: Optional[str] = None
    metadata: dict[str, str] = field(default_factory=dict)
    checksums: dict[str, str] = field(default_factory=dict)
