from __future__ import annotations
"""Filesystem-style adapter on top of :class:`S3ObjectClient`."""
from contextlib import contextmanager
from datetime import datetime
import logging
import mimetypes
from typing import Any, BinaryIO, Callable, Iterator, Mapping, Optional

from .errors import StorageError
from .listing import (
    RecursiveLister,
    emulate_directories,
    normalize_entry,
    parent_of,
    sort_entries,
)
from .models import (
    DEFAULT_PAGE_SIZE,
    DELIMITER,
    EntryType,
    ListingRequest,
    NormalizedEntry,
    ObjectDetails,
    Visibility,
)
from .services import VISIBILITY_ACLS, S3ObjectClient
from .settings import StorageSettings

LOGGER = logging.getLogger(__name__)

CancelFn = Callable[[], bool]


def normalize_path_prefix(prefix: str) -> str:
    cleaned = prefix.strip().strip(DELIMITER)
    return f"{cleaned}{DELIMITER}" if cleaned else ""


def _guess_mimetype(path: str) -> Optional[str]:
    mime_type, _ = mimetypes.guess_type(path)
    return mime_type


def _coerce_visibility(visibility: Visibility | str) -> Visibility:
    if isinstance(visibility, Visibility):
        return visibility
    try:
        return Visibility(str(visibility).strip().lower())
    except ValueError:
        raise ValueError(f"visibility must be 'public' or 'private', got {visibility!r}") from None


class S3FilesystemAdapter:
    """Translates filesystem calls into object-storage operations.

    Every failure is raised as a :class:`~s3_filesystem.errors.StorageError`
    subclass so callers can tell a missing object from a failed request.
    """

    def __init__(
        self,
        client: S3ObjectClient,
        bucket: str,
        *,
        path_prefix: str = "",
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        if not bucket:
            raise ValueError("bucket cannot be empty")
        if page_size <= 0:
            raise ValueError("page_size must be greater than zero")
        self._client = client
        self._bucket = bucket
        self._path_prefix = normalize_path_prefix(path_prefix)
        self._page_size = page_size

    @classmethod
    def from_settings(
        cls,
        settings: StorageSettings,
        *,
        client_factory: Callable[..., object] | None = None,
    ) -> "S3FilesystemAdapter":
        client = S3ObjectClient(
            access_key=settings.key,
            secret_key=settings.secret,
            region=settings.region,
            endpoint_url=settings.endpoint_url,
            client_factory=client_factory,
        )
        return cls(
            client,
            settings.bucket,
            path_prefix=settings.path_prefix,
            page_size=settings.page_size,
        )

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        *,
        client_factory: Callable[..., object] | None = None,
    ) -> "S3FilesystemAdapter":
        return cls.from_settings(StorageSettings.from_mapping(config), client_factory=client_factory)

    @property
    def bucket(self) -> str:
        return self._bucket

    @property
    def path_prefix(self) -> str:
        return self._path_prefix

    def apply_path_prefix(self, path: str) -> str:
        return f"{self._path_prefix}{path.lstrip(DELIMITER)}"

    def remove_path_prefix(self, key: str) -> str:
        if self._path_prefix and key.startswith(self._path_prefix):
            return key[len(self._path_prefix):]
        return key

    # -- writing ---------------------------------------------------------

    def write(
        self,
        path: str,
        contents: bytes | str,
        *,
        visibility: Visibility | str | None = None,
        content_type: str | None = None,
    ) -> NormalizedEntry:
        body = contents.encode("utf-8") if isinstance(contents, str) else contents
        mime_type = content_type or _guess_mimetype(path)
        with self._logged("write", path):
            self._client.put_object(
                self._bucket,
                self.apply_path_prefix(path),
                body,
                content_type=mime_type,
                acl=self._acl_for(visibility),
            )
        return NormalizedEntry(
            path=path,
            parent_dir=parent_of(path),
            type=EntryType.FILE,
            size_bytes=len(body),
            mime_type=mime_type,
        )

    def write_stream(
        self,
        path: str,
        stream: BinaryIO,
        *,
        visibility: Visibility | str | None = None,
        content_type: str | None = None,
    ) -> NormalizedEntry:
        mime_type = content_type or _guess_mimetype(path)
        with self._logged("write stream", path):
            self._client.upload_stream(
                self._bucket,
                self.apply_path_prefix(path),
                stream,
                content_type=mime_type,
                acl=self._acl_for(visibility),
            )
        return NormalizedEntry(
            path=path,
            parent_dir=parent_of(path),
            type=EntryType.FILE,
            mime_type=mime_type,
        )

    def update(self, path: str, contents: bytes | str, **options) -> NormalizedEntry:
        return self.write(path, contents, **options)

    def update_stream(self, path: str, stream: BinaryIO, **options) -> NormalizedEntry:
        return self.write_stream(path, stream, **options)

    def copy(self, path: str, new_path: str, *, destination_bucket: str | None = None) -> None:
        with self._logged("copy", path):
            self._client.copy_object(
                self._bucket,
                self.apply_path_prefix(path),
                destination_bucket or self._bucket,
                self.apply_path_prefix(new_path),
            )

    def rename(self, path: str, new_path: str) -> None:
        self.copy(path, new_path)
        self.delete(path)

    def update_metadata(self, path: str, metadata: Mapping[str, str]) -> None:
        """Replace the user metadata of an object in place."""
        key = self.apply_path_prefix(path)
        with self._logged("update metadata", path):
            self._client.copy_object(self._bucket, key, self._bucket, key, metadata=dict(metadata))

    def delete(self, path: str) -> None:
        with self._logged("delete", path):
            self._client.delete_object(self._bucket, self.apply_path_prefix(path))

    def create_dir(self, dirname: str) -> NormalizedEntry:
        path = dirname.strip(DELIMITER)
        if not path:
            raise ValueError("dirname cannot be empty")
        with self._logged("create dir", path):
            self._client.create_dir(self._bucket, self.apply_path_prefix(path))
        return NormalizedEntry(path=path, parent_dir=parent_of(path), type=EntryType.DIRECTORY)

    def delete_dir(self, dirname: str, *, cancel_requested: CancelFn | None = None) -> int:
        """Delete a directory marker and every object below it.

        The whole tree is listed before anything is deleted, so a failed or
        cancelled listing leaves the bucket untouched. Returns the number of
        keys sent for deletion.
        """
        path = dirname.strip(DELIMITER)
        if not path:
            raise ValueError("dirname cannot be empty")
        location = self.apply_path_prefix(path) + DELIMITER
        with self._logged("delete dir", path):
            objects = RecursiveLister(self._client, cancel_requested=cancel_requested).list(
                ListingRequest(
                    bucket=self._bucket,
                    start_prefix=location,
                    recursive=True,
                    page_size=self._page_size,
                )
            )
            keys = [location] + [obj.key for obj in objects]
            deleted = self._client.delete_objects(self._bucket, keys)
        LOGGER.debug("Deleted directory '%s' (%d key(s))", path, deleted)
        return deleted

    def set_visibility(self, path: str, visibility: Visibility | str) -> Visibility:
        resolved = _coerce_visibility(visibility)
        with self._logged("set visibility", path):
            self._client.put_visibility(self._bucket, self.apply_path_prefix(path), resolved)
        return resolved

    # -- reading ---------------------------------------------------------

    def has(self, path: str) -> bool:
        with self._logged("check existence", path):
            return self._client.object_exists(self._bucket, self.apply_path_prefix(path))

    def read(self, path: str) -> bytes:
        with self._logged("read", path):
            return self._client.get_object(self._bucket, self.apply_path_prefix(path))

    def read_stream(self, path: str):
        with self._logged("read stream", path):
            return self._client.open_object(self._bucket, self.apply_path_prefix(path))

    def list_contents(
        self,
        directory: str = "",
        recursive: bool = False,
        *,
        cancel_requested: CancelFn | None = None,
    ) -> list[NormalizedEntry]:
        """List files and directories below ``directory``.

        Directories that only exist implicitly (through the keys of the
        objects they contain) are included. Entries are ordered parents
        first.
        """
        directory = directory.strip(DELIMITER)
        start_prefix = self.apply_path_prefix(directory) + DELIMITER if directory else self._path_prefix
        request = ListingRequest(
            bucket=self._bucket,
            start_prefix=start_prefix,
            recursive=recursive,
            page_size=self._page_size,
        )
        with self._logged("list contents", directory):
            listing = RecursiveLister(self._client, cancel_requested=cancel_requested).walk(request)

        entries = [normalize_entry(obj, self._path_prefix) for obj in listing.objects]
        known_dirs = {entry.path for entry in entries if entry.is_dir}
        for common in listing.prefixes:
            entry = normalize_entry(common, self._path_prefix)
            if entry.path not in known_dirs:
                known_dirs.add(entry.path)
                entries.append(entry)

        entries = emulate_directories(entry for entry in entries if entry.path)
        return sort_entries(
            entry for entry in entries if self._resides_in(entry, directory, recursive)
        )

    def get_metadata(self, path: str) -> ObjectDetails:
        with self._logged("get metadata", path):
            return self._client.head_object(self._bucket, self.apply_path_prefix(path))

    def get_size(self, path: str) -> Optional[int]:
        return self.get_metadata(path).size

    def get_mimetype(self, path: str) -> Optional[str]:
        return self.get_metadata(path).content_type

    def get_timestamp(self, path: str) -> Optional[datetime]:
        return self.get_metadata(path).last_modified

    def get_visibility(self, path: str) -> Visibility:
        with self._logged("get visibility", path):
            return self._client.get_visibility(self._bucket, self.apply_path_prefix(path))

    def get_signed_url(self, path: str, timeout: int = 600) -> str:
        with self._logged("sign url", path):
            return self._client.generate_presigned_url(
                self._bucket,
                self.apply_path_prefix(path),
                expires_in=timeout,
            )

    # -- helpers ---------------------------------------------------------

    @staticmethod
    def _resides_in(entry: NormalizedEntry, directory: str, recursive: bool) -> bool:
        if not recursive:
            return entry.parent_dir == directory
        if not directory:
            return True
        return entry.path.startswith(directory + DELIMITER)

    @staticmethod
    def _acl_for(visibility: Visibility | str | None) -> str | None:
        if visibility is None:
            return None
        return VISIBILITY_ACLS[_coerce_visibility(visibility)]

    @contextmanager
    def _logged(self, action: str, path: str) -> Iterator[None]:
        try:
            yield
        except StorageError as exc:
            LOGGER.warning("Unable to %s '%s' in bucket '%s': %s", action, path, self._bucket, exc)
            raise
