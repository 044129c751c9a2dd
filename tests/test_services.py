import base64
import hashlib
import io
import unittest
from datetime import datetime

from botocore.exceptions import ClientError, EndpointConnectionError, ReadTimeoutError

from fake_s3 import InMemoryS3Client, client_error
from s3_filesystem.errors import ObjectNotFound, ObjectOperationFailed, RemoteListError
from s3_filesystem.models import RawPrefix, Visibility
from s3_filesystem.services import S3ObjectClient


class ScriptedS3Client:
    def __init__(self, object_responses):
        self.object_responses = iter(object_responses)
        self.list_objects_kwargs = []

    def list_objects_v2(self, **kwargs):
        self.list_objects_kwargs.append(kwargs)
        response = next(self.object_responses)
        if isinstance(response, Exception):
            raise response
        return response


def make_client(fake_client, factory_calls=None):
    def factory(*args, **kwargs):
        if factory_calls is not None:
            factory_calls.append((args, kwargs))
        return fake_client

    return S3ObjectClient(
        access_key="access",
        secret_key="secret",
        region="eu-central-1",
        endpoint_url="https://example.com",
        client_factory=factory,
    )


class S3ObjectClientTests(unittest.TestCase):
    def test_creates_sdk_client_with_credentials(self):
        calls = []
        make_client(InMemoryS3Client(), calls)

        args, kwargs = calls[0]
        self.assertEqual(("s3",), args)
        self.assertEqual("https://example.com", kwargs["endpoint_url"])
        self.assertEqual("eu-central-1", kwargs["region_name"])
        self.assertEqual("access", kwargs["aws_access_key_id"])
        self.assertEqual("secret", kwargs["aws_secret_access_key"])
        self.assertIsNotNone(kwargs["config"])

    def test_list_page_maps_contents_prefixes_and_token(self):
        last_modified = datetime(2024, 1, 1, 12, 0, 0)
        fake_client = ScriptedS3Client(
            [
                {
                    "Contents": [
                        {
                            "Key": "docs/a.txt",
                            "Size": 10,
                            "LastModified": last_modified,
                            "ETag": '"abc"',
                            "StorageClass": "STANDARD",
                        }
                    ],
                    "CommonPrefixes": [{"Prefix": "docs/sub/"}],
                    "IsTruncated": True,
                    "NextContinuationToken": "token-1",
                }
            ]
        )
        client = make_client(fake_client)

        page = client.list_page("bucket-one", "docs/", "/", 2, "token-0")

        self.assertEqual(1, len(page.object_entries))
        entry = page.object_entries[0]
        self.assertEqual("docs/a.txt", entry.key)
        self.assertEqual(10, entry.size_bytes)
        self.assertEqual(last_modified, entry.last_modified)
        self.assertEqual('"abc"', entry.etag)
        self.assertEqual("STANDARD", entry.storage_class)
        self.assertEqual("docs/", entry.prefix)
        self.assertEqual((RawPrefix("docs/sub/"),), page.prefix_entries)
        self.assertEqual("token-1", page.next_token)
        self.assertEqual(
            {
                "Bucket": "bucket-one",
                "Prefix": "docs/",
                "Delimiter": "/",
                "MaxKeys": 2,
                "ContinuationToken": "token-0",
            },
            fake_client.list_objects_kwargs[0],
        )

    def test_list_page_omits_empty_prefix_and_token(self):
        fake_client = ScriptedS3Client([{"IsTruncated": False}])
        client = make_client(fake_client)

        page = client.list_page("bucket-one", "", "/", 100)

        self.assertEqual((), page.object_entries)
        self.assertEqual((), page.prefix_entries)
        self.assertIsNone(page.next_token)
        self.assertNotIn("Prefix", fake_client.list_objects_kwargs[0])
        self.assertNotIn("ContinuationToken", fake_client.list_objects_kwargs[0])

    def test_list_page_ignores_token_when_not_truncated(self):
        fake_client = ScriptedS3Client([{"IsTruncated": False, "NextContinuationToken": "stale"}])

        page = make_client(fake_client).list_page("bucket-one", "", "/", 100)

        self.assertIsNone(page.next_token)

    def test_list_page_wraps_sdk_errors(self):
        list_error = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "Denied"}},
            "ListObjectsV2",
        )
        client = make_client(ScriptedS3Client([list_error]))

        with self.assertRaises(RemoteListError) as ctx:
            client.list_page("bucket-one", "docs/", "/", 100)

        self.assertIs(list_error, ctx.exception.__cause__)
        self.assertEqual("docs/", ctx.exception.path)

    def test_list_page_wraps_connection_errors(self):
        error = EndpointConnectionError(endpoint_url="https://example.com")
        client = make_client(ScriptedS3Client([error]))

        with self.assertRaises(RemoteListError):
            client.list_page("bucket-one", "", "/", 100)

    def test_put_object_sends_md5_and_options(self):
        fake_client = InMemoryS3Client()
        client = make_client(fake_client)

        client.put_object(
            "bucket-one",
            "a.txt",
            "hello",
            content_type="text/plain",
            acl="public-read",
            metadata={"owner": "me"},
        )

        call = fake_client.put_object_calls[0]
        self.assertEqual(b"hello", call["Body"])
        expected_md5 = base64.b64encode(hashlib.md5(b"hello").digest()).decode("ascii")
        self.assertEqual(expected_md5, call["ContentMD5"])
        self.assertEqual("text/plain", call["ContentType"])
        self.assertEqual("public-read", call["ACL"])
        self.assertEqual({"owner": "me"}, call["Metadata"])

    def test_put_object_failure_raises_operation_failed(self):
        fake_client = InMemoryS3Client()
        fake_client.errors[("PutObject", "a.txt")] = client_error("InternalError", "PutObject")
        client = make_client(fake_client)

        with self.assertRaises(ObjectOperationFailed):
            client.put_object("bucket-one", "a.txt", b"data")

    def test_get_object_returns_body(self):
        client = make_client(InMemoryS3Client({"a.txt": "hello"}))

        self.assertEqual(b"hello", client.get_object("bucket-one", "a.txt"))

    def test_missing_object_raises_not_found(self):
        client = make_client(InMemoryS3Client())

        with self.assertRaises(ObjectNotFound) as ctx:
            client.get_object("bucket-one", "missing.txt")
        self.assertEqual("missing.txt", ctx.exception.path)

        with self.assertRaises(ObjectNotFound):
            client.head_object("bucket-one", "missing.txt")

    def test_head_object_returns_details(self):
        fake_client = InMemoryS3Client()
        client = make_client(fake_client)
        client.put_object("bucket-one", "a.txt", b"abc", content_type="text/plain", metadata={"k": "v"})
        fake_client.checksums["a.txt"] = {"ChecksumSHA256": "sha-value", "ChecksumCRC32": None}

        details = client.head_object("bucket-one", "a.txt")

        self.assertEqual("bucket-one", details.bucket)
        self.assertEqual("a.txt", details.key)
        self.assertEqual(3, details.size)
        self.assertEqual("text/plain", details.content_type)
        self.assertEqual({"k": "v"}, details.metadata)
        self.assertEqual({"SHA256": "sha-value"}, details.checksums)

    def test_get_object_translates_body_read_errors(self):
        class FailingBody:
            def read(self):
                raise ReadTimeoutError(endpoint_url="https://example.com")

        class SlowS3Client(InMemoryS3Client):
            def get_object(self, **kwargs):
                return {"Body": FailingBody()}

        client = make_client(SlowS3Client({"a.txt": "x"}))

        with self.assertRaises(ObjectOperationFailed) as ctx:
            client.get_object("bucket-one", "a.txt")

        self.assertIsInstance(ctx.exception.__cause__, ReadTimeoutError)
        self.assertEqual("a.txt", ctx.exception.path)

    def test_object_exists(self):
        client = make_client(InMemoryS3Client({"a.txt": "x"}))

        self.assertTrue(client.object_exists("bucket-one", "a.txt"))
        self.assertFalse(client.object_exists("bucket-one", "b.txt"))

    def test_object_exists_propagates_other_failures(self):
        fake_client = InMemoryS3Client({"a.txt": "x"})
        fake_client.errors[("HeadObject", "a.txt")] = client_error("AccessDenied", "HeadObject")
        client = make_client(fake_client)

        with self.assertRaises(ObjectOperationFailed):
            client.object_exists("bucket-one", "a.txt")

    def test_delete_objects_batches_and_deduplicates(self):
        objects = {f"k{index}": "x" for index in range(1500)}
        fake_client = InMemoryS3Client(objects)
        client = make_client(fake_client)

        count = client.delete_objects("bucket-one", list(objects) + ["k0"])

        self.assertEqual(1500, count)
        self.assertEqual([1000, 500], [len(batch) for batch in fake_client.delete_objects_calls])
        self.assertEqual({}, fake_client.objects)

    def test_delete_objects_reports_partial_errors(self):
        class PartialDeleteClient(InMemoryS3Client):
            def delete_objects(self, **kwargs):
                return {"Errors": [{"Key": "b.txt", "Code": "AccessDenied", "Message": "Denied"}]}

        client = make_client(PartialDeleteClient({"a.txt": "x", "b.txt": "y"}))

        with self.assertRaises(ObjectOperationFailed) as ctx:
            client.delete_objects("bucket-one", ["a.txt", "b.txt"])
        self.assertEqual("b.txt", ctx.exception.path)

    def test_copy_object_replaces_metadata_when_given(self):
        fake_client = InMemoryS3Client({"a.txt": "x"})
        client = make_client(fake_client)

        client.copy_object("bucket-one", "a.txt", "bucket-one", "b.txt")
        client.copy_object("bucket-one", "a.txt", "bucket-one", "a.txt", metadata={"k": "v"})

        first, second = fake_client.copy_object_calls
        self.assertNotIn("MetadataDirective", first)
        self.assertEqual({"Bucket": "bucket-one", "Key": "a.txt"}, first["CopySource"])
        self.assertEqual("REPLACE", second["MetadataDirective"])
        self.assertEqual({"k": "v"}, second["Metadata"])
        self.assertEqual(b"x", fake_client.objects["b.txt"])

    def test_visibility_round_trip(self):
        fake_client = InMemoryS3Client({"a.txt": "x"})
        client = make_client(fake_client)

        self.assertEqual(Visibility.PRIVATE, client.get_visibility("bucket-one", "a.txt"))
        client.put_visibility("bucket-one", "a.txt", Visibility.PUBLIC)

        self.assertEqual("public-read", fake_client.acls["a.txt"])
        self.assertEqual(Visibility.PUBLIC, client.get_visibility("bucket-one", "a.txt"))

    def test_create_dir_writes_empty_marker(self):
        fake_client = InMemoryS3Client()
        client = make_client(fake_client)

        marker = client.create_dir("bucket-one", "docs/sub")

        self.assertEqual("docs/sub/", marker)
        self.assertEqual(b"", fake_client.objects["docs/sub/"])

    def test_upload_stream_passes_extra_args(self):
        fake_client = InMemoryS3Client()
        client = make_client(fake_client)

        client.upload_stream("bucket-one", "a.bin", io.BytesIO(b"data"), content_type="application/x-test")

        self.assertEqual(b"data", fake_client.objects["a.bin"])
        self.assertEqual("application/x-test", fake_client.put_object_calls[0]["ContentType"])

    def test_generate_presigned_get_url_passes_response_headers(self):
        fake_client = InMemoryS3Client()
        client = make_client(fake_client)

        url = client.generate_presigned_url(
            "bucket-one",
            "file.txt",
            method="get",
            expires_in=600,
            content_type="text/plain",
            content_disposition="attachment",
        )

        self.assertEqual("https://example.com/file.txt?expires=600", url)
        call = fake_client.presigned_url_calls[0]
        self.assertEqual("get_object", call["method"])
        self.assertEqual(600, call["expires_in"])
        self.assertEqual("text/plain", call["params"]["ResponseContentType"])
        self.assertEqual("attachment", call["params"]["ResponseContentDisposition"])

    def test_generate_presigned_put_url_uses_put_object_operation(self):
        fake_client = InMemoryS3Client()
        client = make_client(fake_client)

        client.generate_presigned_url(
            "bucket-one",
            "upload.bin",
            method="put",
            expires_in=120,
            content_type="application/octet-stream",
        )

        call = fake_client.presigned_url_calls[0]
        self.assertEqual("put_object", call["method"])
        self.assertEqual("application/octet-stream", call["params"]["ContentType"])

    def test_generate_presigned_url_validates_inputs(self):
        client = make_client(InMemoryS3Client())

        with self.assertRaises(ValueError):
            client.generate_presigned_url("bucket-one", "file.txt", method="delete")

        with self.assertRaises(ValueError):
            client.generate_presigned_url("bucket-one", "file.txt", expires_in=0)


if __name__ == "__main__":
    unittest.main()
