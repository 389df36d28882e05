"""Object storage client.

CosClient exposes the object storage operations: list buckets, list
objects (paginated), get, put and delete objects, and the multipart
upload calls. Addressing and authorization come from an Authorizer
(bearer token or HMAC signing) and requests are sent through an
injected HttpTransport.
"""

import base64
import hashlib
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, BinaryIO, Iterable, Optional

from cos_client.auth import Authorizer
from cos_client.errors import DecodeError, raise_for_status
from cos_client.models import Bucket, ListingPage, Part, Request, Response, UploadResult, UploadSession
from cos_client.multipart import DEFAULT_CHUNK_SIZE, MultipartUpload
from cos_client.paginator import ObjectListing
from cos_client.transport import HttpTransport
from cos_client.xml_codec import (
    decode_complete_multipart_upload,
    decode_delete_result,
    decode_initiate_multipart_upload,
    decode_list_buckets,
    decode_list_objects,
    encode_complete_multipart_upload,
    encode_delete_objects,
)

if TYPE_CHECKING:
    from cos_client.reporters.base import Reporter

logger = logging.getLogger(__name__)

# Multi-object delete accepts at most 1000 keys per request
DELETE_BATCH_SIZE = 1000


class CosClient:
    """Client for an S3-compatible object storage service.

    Args:
        authorizer: Addressing and authorization strategy
        transport: HTTP transport (owns the connection pool)
        instance_id: Service instance id sent when listing buckets (bearer mode)
    """

    def __init__(
        self,
        authorizer: Authorizer,
        transport: Optional[HttpTransport] = None,
        instance_id: Optional[str] = None,
    ):
        self.authorizer = authorizer
        self.transport = transport or HttpTransport()
        self.instance_id = instance_id

    def _send(
        self,
        method: str,
        bucket: Optional[str],
        key: str = "",
        query: Optional[list] = None,
        headers: Optional[dict[str, str]] = None,
        body: bytes = b"",
        unsigned_payload: bool = False,
        sink: Optional[BinaryIO] = None,
    ) -> Response:
        """Build, authorize and send a request; raise on non-2xx."""
        base_url, path = self.authorizer.address(bucket, key)
        request = Request(
            method=method,
            path=path,
            query=query or [],
            headers=headers or {},
            body=body,
        )
        auth_headers = self.authorizer.authorize(request, base_url, unsigned_payload=unsigned_payload)
        response = self.transport.execute(request, base_url, headers=auth_headers, sink=sink)
        raise_for_status(response, method, request.url(base_url))
        return response

    def list_buckets(self) -> list[Bucket]:
        """List all buckets of the account (or service instance)."""
        headers = {}
        if self.instance_id:
            headers["ibm-service-instance-id"] = self.instance_id
        response = self._send("GET", None, headers=headers)
        return decode_list_buckets(response.text)

    def list_objects_page(
        self,
        bucket: str,
        continuation_token: Optional[str] = None,
        prefix: Optional[str] = None,
        start_after: Optional[str] = None,
        max_keys: Optional[int] = None,
    ) -> ListingPage:
        """Fetch a single list-type=2 page of a bucket listing."""
        query = [("list-type", "2")]
        if continuation_token is not None:
            query.append(("continuation-token", continuation_token))
        if prefix is not None:
            query.append(("prefix", prefix))
        if start_after is not None:
            query.append(("start-after", start_after))
        if max_keys is not None:
            query.append(("max-keys", str(max_keys)))

        response = self._send("GET", bucket, query=query)
        return decode_list_objects(response.text)

    def list_objects(
        self,
        bucket: str,
        prefix: Optional[str] = None,
        start_after: Optional[str] = None,
        max_keys: Optional[int] = None,
    ) -> ObjectListing:
        """Lazily list the objects of a bucket.

        Returns:
            An iterator of ObjectDescriptors that fetches pages on demand.
            Listing errors end the iteration and are kept on its ``error``.
        """
        def fetch_page(continuation_token, page_prefix, page_start_after) -> ListingPage:
            return self.list_objects_page(
                bucket,
                continuation_token=continuation_token,
                prefix=page_prefix,
                start_after=page_start_after,
                max_keys=max_keys,
            )

        return ObjectListing(fetch_page, prefix=prefix, start_after=start_after)

    def get_object(
        self,
        bucket: str,
        key: str,
        start: Optional[int] = None,
        end: Optional[int] = None,
        sink: Optional[BinaryIO] = None,
    ) -> bytes:
        """Download an object, or a byte range of it.

        Args:
            bucket: Bucket name
            key: Object key
            start: First byte of the range (inclusive); whole object if None
            end: Last byte of the range (inclusive); to the end if None
            sink: Optional writable binary file to stream the body into

        Returns:
            The body, or b"" when streamed into ``sink``.
        """
        headers = {}
        if start is not None:
            headers["Range"] = f"bytes={start}-{end if end is not None else ''}"
        elif end is not None:
            raise ValueError("A range end requires a range start")

        response = self._send("GET", bucket, key, headers=headers, sink=sink)
        return response.body

    def put_object(self, bucket: str, key: str, data: bytes) -> Optional[str]:
        """Upload an object in a single request.

        Returns:
            The ETag of the stored object, if the server sent one.
        """
        response = self._send("PUT", bucket, key, body=data, unsigned_payload=True)
        return response.header("ETag")

    def delete_object(self, bucket: str, key: str) -> None:
        """Delete one object."""
        self._send("DELETE", bucket, key)

    def delete_objects(self, bucket: str, keys: Iterable[str]) -> list[dict[str, str]]:
        """Delete several objects with multi-object delete requests.

        Returns:
            The per-key errors reported by the server (empty on full success).
        """
        keys = list(keys)
        errors = []
        for offset in range(0, len(keys), DELETE_BATCH_SIZE):
            batch = keys[offset:offset + DELETE_BATCH_SIZE]
            body = encode_delete_objects(batch).encode("utf-8")
            headers = {
                "Content-MD5": base64.b64encode(hashlib.md5(body).digest()).decode("ascii"),
                "Content-Type": "application/xml",
            }
            response = self._send("POST", bucket, query=[("delete", None)], headers=headers, body=body)
            errors.extend(decode_delete_result(response.text))
        return errors

    def create_multipart_upload(self, bucket: str, key: str) -> UploadSession:
        """Initiate a multipart upload (POST /{key}?uploads)."""
        response = self._send("POST", bucket, key, query=[("uploads", None)])
        upload_id = decode_initiate_multipart_upload(response.text)
        return UploadSession(bucket=bucket, key=key, upload_id=upload_id)

    def upload_part(self, session: UploadSession, part_number: int, data: bytes) -> Part:
        """Upload one part (PUT /{key}?partNumber={n}&uploadId={id}).

        Returns:
            The part with the ETag header captured verbatim.
        """
        response = self._send(
            "PUT",
            session.bucket,
            session.key,
            query=[("partNumber", str(part_number)), ("uploadId", session.upload_id)],
            body=data,
            unsigned_payload=True,
        )
        etag = response.header("ETag")
        if etag is None:
            raise DecodeError(f"No ETag header in response to part {part_number}")
        return Part(part_number=part_number, etag=etag)

    def complete_multipart_upload(self, session: UploadSession, parts: Iterable[Part]) -> dict[str, Any]:
        """Complete a multipart upload (POST /{key}?uploadId={id})."""
        body = encode_complete_multipart_upload(parts).encode("utf-8")
        response = self._send(
            "POST",
            session.bucket,
            session.key,
            query=[("uploadId", session.upload_id)],
            headers={"Content-Type": "application/xml"},
            body=body,
        )
        return decode_complete_multipart_upload(response.text)

    def abort_multipart_upload(self, session: UploadSession) -> None:
        """Abort a multipart upload (DELETE /{key}?uploadId={id})."""
        self._send(
            "DELETE",
            session.bucket,
            session.key,
            query=[("uploadId", session.upload_id)],
        )

    def upload_stream(
        self,
        bucket: str,
        key: str,
        stream: BinaryIO,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_workers: int = 1,
        reporter: Optional["Reporter"] = None,
    ) -> UploadResult:
        """Upload a stream of any size as a multipart upload."""
        upload = MultipartUpload(self, bucket, key, reporter=reporter)
        return upload.upload_stream(stream, chunk_size=chunk_size, max_workers=max_workers)

    def upload_file(
        self,
        bucket: str,
        key: str,
        file_path: str,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_workers: int = 1,
        reporter: Optional["Reporter"] = None,
    ) -> UploadResult:
        """Upload a local file as a multipart upload."""
        with open(Path(file_path), "rb") as f:
            return self.upload_stream(
                bucket,
                key,
                f,
                chunk_size=chunk_size,
                max_workers=max_workers,
                reporter=reporter,
            )

    def close(self) -> None:
        self.transport.close()

    def __enter__(self) -> "CosClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False
