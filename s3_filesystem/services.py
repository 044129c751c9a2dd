from __future__ import annotations
"""Thin wrapper around the boto3 S3 client."""
import base64
import hashlib
import logging
from typing import BinaryIO, Callable, Iterable, Optional

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from .errors import ObjectNotFound, ObjectOperationFailed, RemoteListError, StorageError
from .models import ListingPage, ObjectDetails, RawEntry, RawPrefix, Visibility

LOGGER = logging.getLogger(__name__)

NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}
DELETE_BATCH_SIZE = 1000
ALL_USERS_URI = "http://acs.amazonaws.com/groups/global/AllUsers"
VISIBILITY_ACLS = {
    Visibility.PUBLIC: "public-read",
    Visibility.PRIVATE: "private",
}


def _error_code(exc: Exception) -> str:
    if isinstance(exc, ClientError):
        return str(exc.response.get("Error", {}).get("Code", ""))
    return ""


def _translate_error(exc: Exception, message: str, *, path: str | None = None) -> StorageError:
    if _error_code(exc) in NOT_FOUND_CODES:
        return ObjectNotFound(f"{message}: object not found", path=path)
    return ObjectOperationFailed(f"{message}: {exc}", path=path)


def _content_md5(body: bytes) -> str:
    return base64.b64encode(hashlib.md5(body).digest()).decode("ascii")


class S3ObjectClient:
    """Object operations used by the filesystem adapter.

    One boto3 client is created up front; ``client_factory`` can be swapped
    for a fake in tests.
    """

    def __init__(
        self,
        *,
        access_key: str,
        secret_key: str,
        region: str | None = None,
        endpoint_url: str | None = None,
        client_factory: Callable[..., object] | None = None,
    ):
        factory = client_factory or boto3.client
        config = Config(signature_version="s3v4")
        self._client = factory(
            "s3",
            endpoint_url=endpoint_url or None,
            region_name=region or None,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            config=config,
        )

    def list_page(
        self,
        bucket: str,
        prefix: str,
        delimiter: str,
        page_size: int,
        continuation_token: Optional[str] = None,
    ) -> ListingPage:
        """Fetch one page of a delimiter listing.

        Raises:
            RemoteListError: when the service rejects or fails the request.
        """
        list_params = {"Bucket": bucket, "MaxKeys": page_size}
        if prefix:
            list_params["Prefix"] = prefix
        if delimiter:
            list_params["Delimiter"] = delimiter
        if continuation_token:
            list_params["ContinuationToken"] = continuation_token

        try:
            response = self._client.list_objects_v2(**list_params)
        except (ClientError, BotoCoreError) as exc:
            raise RemoteListError(
                f"Unable to list '{prefix}' in bucket '{bucket}': {exc}",
                path=prefix,
            ) from exc

        objects = tuple(
            RawEntry(
                key=obj["Key"],
                last_modified=obj.get("LastModified"),
                etag=obj.get("ETag"),
                size_bytes=obj.get("Size"),
                storage_class=obj.get("StorageClass"),
                prefix=prefix,
            )
            for obj in response.get("Contents", [])
        )
        prefixes = tuple(
            RawPrefix(prefix=common["Prefix"]) for common in response.get("CommonPrefixes", [])
        )
        next_token = None
        if response.get("IsTruncated", False):
            next_token = response.get("NextContinuationToken") or None
        return ListingPage(object_entries=objects, prefix_entries=prefixes, next_token=next_token)

    def get_object(self, bucket: str, key: str) -> bytes:
        body = self.open_object(bucket, key)
        try:
            return body.read()
        except (ClientError, BotoCoreError) as exc:
            raise _translate_error(exc, f"Unable to read '{key}'", path=key) from exc

    def open_object(self, bucket: str, key: str):
        """Return the streaming body of an object."""

        try:
            response = self._client.get_object(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise _translate_error(exc, f"Unable to read '{key}'", path=key) from exc
        return response["Body"]

    def put_object(
        self,
        bucket: str,
        key: str,
        body: bytes | str,
        *,
        content_type: str | None = None,
        acl: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> None:
        if isinstance(body, str):
            body = body.encode("utf-8")
        params = {
            "Bucket": bucket,
            "Key": key,
            "Body": body,
            "ContentMD5": _content_md5(body),
        }
        if content_type:
            params["ContentType"] = content_type
        if acl:
            params["ACL"] = acl
        if metadata:
            params["Metadata"] = dict(metadata)
        try:
            self._client.put_object(**params)
        except (ClientError, BotoCoreError) as exc:
            raise ObjectOperationFailed(f"Unable to write '{key}': {exc}", path=key) from exc

    def upload_stream(
        self,
        bucket: str,
        key: str,
        fileobj: BinaryIO,
        *,
        content_type: str | None = None,
        acl: str | None = None,
    ) -> None:
        extra_args: dict[str, str] = {}
        if content_type:
            extra_args["ContentType"] = content_type
        if acl:
            extra_args["ACL"] = acl
        try:
            self._client.upload_fileobj(fileobj, bucket, key, ExtraArgs=extra_args or None)
        except (ClientError, BotoCoreError) as exc:
            raise ObjectOperationFailed(f"Unable to write '{key}': {exc}", path=key) from exc

    def delete_object(self, bucket: str, key: str) -> None:
        try:
            self._client.delete_object(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise _translate_error(exc, f"Unable to delete '{key}'", path=key) from exc

    def delete_objects(self, bucket: str, keys: Iterable[str]) -> int:
        """Delete ``keys`` in batches; returns the number of keys sent."""

        unique_keys = list(dict.fromkeys(keys))
        for start in range(0, len(unique_keys), DELETE_BATCH_SIZE):
            batch = unique_keys[start:start + DELETE_BATCH_SIZE]
            try:
                response = self._client.delete_objects(
                    Bucket=bucket,
                    Delete={"Objects": [{"Key": key} for key in batch], "Quiet": True},
                )
            except (ClientError, BotoCoreError) as exc:
                raise ObjectOperationFailed(
                    f"Unable to delete {len(batch)} object(s): {exc}",
                    path=batch[0],
                ) from exc
            errors = response.get("Errors") or []
            if errors:
                first = errors[0]
                raise ObjectOperationFailed(
                    f"Unable to delete {len(errors)} object(s), first '{first.get('Key')}': "
                    f"{first.get('Message') or first.get('Code')}",
                    path=first.get("Key"),
                )
            LOGGER.debug("Deleted batch of %d object(s) from '%s'", len(batch), bucket)
        return len(unique_keys)

    def copy_object(
        self,
        src_bucket: str,
        src_key: str,
        dst_bucket: str,
        dst_key: str,
        *,
        metadata: dict[str, str] | None = None,
    ) -> None:
        params = {
            "Bucket": dst_bucket,
            "Key": dst_key,
            "CopySource": {"Bucket": src_bucket, "Key": src_key},
        }
        if metadata is not None:
            params["Metadata"] = dict(metadata)
            params["MetadataDirective"] = "REPLACE"
        try:
            self._client.copy_object(**params)
        except (ClientError, BotoCoreError) as exc:
            raise _translate_error(
                exc, f"Unable to copy '{src_key}' to '{dst_key}'", path=src_key
            ) from exc

    def head_object(self, bucket: str, key: str) -> ObjectDetails:
        try:
            response = self._client.head_object(Bucket=bucket, Key=key, ChecksumMode="ENABLED")
        except (ClientError, BotoCoreError) as exc:
            raise _translate_error(exc, f"Unable to read metadata of '{key}'", path=key) from exc
        checksums = {
            "CRC32": response.get("ChecksumCRC32"),
            "CRC32C": response.get("ChecksumCRC32C"),
            "SHA1": response.get("ChecksumSHA1"),
            "SHA256": response.get("ChecksumSHA256"),
        }
        checksums = {name: value for name, value in checksums.items() if value}
        return ObjectDetails(
            bucket=bucket,
            key=key,
            size=response.get("ContentLength"),
            last_modified=response.get("LastModified"),
            storage_class=response.get("StorageClass"),
            etag=response.get("ETag"),
            content_type=response.get("ContentType"),
            metadata=dict(response.get("Metadata") or {}),
            checksums=checksums,
        )

    def object_exists(self, bucket: str, key: str) -> bool:
        try:
            self.head_object(bucket, key)
        except ObjectNotFound:
            return False
        return True

    def get_visibility(self, bucket: str, key: str) -> Visibility:
        try:
            response = self._client.get_object_acl(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise _translate_error(exc, f"Unable to read ACL of '{key}'", path=key) from exc
        for grant in response.get("Grants", []):
            grantee = grant.get("Grantee", {})
            if grantee.get("URI") == ALL_USERS_URI and grant.get("Permission") in {"READ", "FULL_CONTROL"}:
                return Visibility.PUBLIC
        return Visibility.PRIVATE

    def put_visibility(self, bucket: str, key: str, visibility: Visibility) -> None:
        try:
            self._client.put_object_acl(Bucket=bucket, Key=key, ACL=VISIBILITY_ACLS[visibility])
        except (ClientError, BotoCoreError) as exc:
            raise _translate_error(exc, f"Unable to set ACL of '{key}'", path=key) from exc

    def create_dir(self, bucket: str, key: str) -> str:
        marker = key.rstrip("/") + "/"
        try:
            self._client.put_object(Bucket=bucket, Key=marker, Body=b"")
        except (ClientError, BotoCoreError) as exc:
            raise ObjectOperationFailed(
                f"Unable to create directory '{marker}': {exc}", path=marker
            ) from exc
        return marker

    def generate_presigned_url(
        self,
        bucket: str,
        key: str,
        *,
        method: str = "get",
        expires_in: int = 3600,
        content_type: str | None = None,
        content_disposition: str | None = None,
    ) -> str:
        """Create a presigned URL for the requested object operation."""

        operation = method.strip().lower()
        if operation not in {"get", "put"}:
            raise ValueError("method must be either 'get' or 'put'")
        if expires_in <= 0:
            raise ValueError("expires_in must be greater than zero")

        client_method = "get_object" if operation == "get" else "put_object"
        params: dict[str, str] = {"Bucket": bucket, "Key": key}
        if operation == "get":
            if content_type:
                params["ResponseContentType"] = content_type
            if content_disposition:
                params["ResponseContentDisposition"] = content_disposition
        else:
            if content_type:
                params["ContentType"] = content_type
            if content_disposition:
                params["ContentDisposition"] = content_disposition

        try:
            return self._client.generate_presigned_url(
                client_method,
                Params=params,
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as exc:
            raise ObjectOperationFailed(f"Unable to sign URL for '{key}': {exc}", path=key) from exc
