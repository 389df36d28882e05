"""Multipart upload lifecycle management.

Handles the complete lifecycle of S3 multipart uploads:
- Initiate upload
- Upload fixed-size parts read from a stream
- Complete the upload, or abort it when completion fails

State machine:

    NOT_STARTED -> INITIATED -> UPLOADING -> COMPLETING -> DONE
                        \\____________\\____________\\______-> ABORTED

Calls made in the wrong state raise ProtocolError without contacting
the server.
"""

import logging
import threading
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from typing import TYPE_CHECKING, Any, BinaryIO, Generator, Optional

from cos_client.errors import AbortFailedError, CompleteFailedError, CosError, ProtocolError
from cos_client.models import Part, UploadResult, UploadSession, UploadState

if TYPE_CHECKING:
    from cos_client.reporters.base import Reporter

logger = logging.getLogger(__name__)

# Default chunk size: 5 MiB (S3 minimum part size)
DEFAULT_CHUNK_SIZE = 5 * 1024 * 1024

# S3 allows at most this many parts per upload
MAX_PARTS = 10000


def read_chunk(stream: BinaryIO, chunk_size: int) -> bytes:
    """Read up to ``chunk_size`` bytes, retrying short reads until EOF.

    Returns:
        Exactly ``chunk_size`` bytes, fewer only at end of stream, and
        b"" once the stream is exhausted.
    """
    buffer = bytearray()
    while len(buffer) < chunk_size:
        data = stream.read(chunk_size - len(buffer))
        if not data:
            break
        buffer.extend(data)
    return bytes(buffer)


def iter_chunks(
    stream: BinaryIO,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> Generator[bytes, None, None]:
    """Iterate over fixed-size chunks of a stream.

    A zero-length read ends the iteration and is not yielded.

    Args:
        stream: Binary stream to read.
        chunk_size: Size of each chunk in bytes.

    Yields:
        Chunks of ``chunk_size`` bytes; the last one may be shorter.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    while True:
        chunk = read_chunk(stream, chunk_size)
        if not chunk:
            break
        yield chunk


class MultipartUpload:
    """Manages the lifecycle of one multipart upload.

    This class handles:
    - Initiating a multipart upload
    - Assigning part numbers and tracking uploaded parts and their ETags
    - Completing the upload, aborting it if completion fails

    A session is finished once it reaches DONE or ABORTED and cannot be
    reused. Can be used as a context manager: entering initiates the
    upload, and leaving with an exception aborts it if it is still open.

    Args:
        client: CosClient (or anything with the same multipart methods)
        bucket: Target bucket
        key: Target object key
        reporter: Optional reporter notified of progress
    """

    def __init__(
        self,
        client: Any,
        bucket: str,
        key: str,
        reporter: Optional["Reporter"] = None,
    ):
        self.client = client
        self.bucket = bucket
        self.key = key
        self.reporter = reporter
        self.state = UploadState.NOT_STARTED
        self.session: Optional[UploadSession] = None
        self.uploaded_parts: list[Part] = []
        self.bytes_uploaded = 0
        self._next_part_number = 1
        self._lock = threading.Lock()

    def _require_state(self, operation: str, *allowed: UploadState) -> None:
        if self.state not in allowed:
            raise ProtocolError(
                f"Cannot {operation} upload of {self.bucket}/{self.key} "
                f"in state {self.state.value}"
            )

    def initiate(self) -> UploadSession:
        """Initiate a new multipart upload.

        Returns:
            The new upload session.

        Raises:
            ProtocolError: If the upload was already initiated.
            CosError: If the API call fails. No cleanup is needed.
        """
        self._require_state("initiate", UploadState.NOT_STARTED)

        self.session = self.client.create_multipart_upload(self.bucket, self.key)
        self.state = UploadState.INITIATED
        logger.info("Initiated upload %s for %s/%s", self.session.upload_id, self.bucket, self.key)

        if self.reporter:
            self.reporter.on_upload_start(self.session)
        return self.session

    def next_part_number(self) -> int:
        """Reserve the next part number. Numbers start at 1 and never repeat."""
        with self._lock:
            self._require_state("upload part for", UploadState.INITIATED, UploadState.UPLOADING)
            if self._next_part_number > MAX_PARTS:
                raise ProtocolError(f"Upload exceeds {MAX_PARTS} parts; use a larger chunk size")
            part_number = self._next_part_number
            self._next_part_number += 1
            self.state = UploadState.UPLOADING
            return part_number

    def upload_part(self, data: bytes, part_number: Optional[int] = None) -> Part:
        """Upload one chunk as a part.

        Args:
            data: The chunk. Must not be empty.
            part_number: A number from next_part_number(); reserved here if omitted.

        Returns:
            The uploaded part with its server-assigned ETag.

        Raises:
            ProtocolError: If the session is not open for uploads.
            ValueError: If ``data`` is empty.
        """
        if not data:
            raise ValueError("Empty chunk cannot be uploaded as a part")
        if part_number is None:
            part_number = self.next_part_number()
        else:
            self._require_state("upload part for", UploadState.UPLOADING)

        part = self.client.upload_part(self.session, part_number, data)
        self.add_part(part, len(data))
        logger.debug("Uploaded part %d (%d bytes) of %s", part_number, len(data), self.session.upload_id)

        if self.reporter:
            self.reporter.on_part_complete(self.session, part, len(data))
        return part

    def add_part(self, part: Part, size: int = 0) -> None:
        """Record a successfully uploaded part.

        Raises:
            ProtocolError: If the part number was already recorded.
        """
        with self._lock:
            if any(p.part_number == part.part_number for p in self.uploaded_parts):
                raise ProtocolError(f"Part {part.part_number} recorded twice")
            self.uploaded_parts.append(part)
            self.bytes_uploaded += size

    def get_uploaded_parts(self) -> list[Part]:
        """Get the uploaded parts in ascending part number order."""
        with self._lock:
            return sorted(self.uploaded_parts)

    def complete(self) -> UploadResult:
        """Complete the multipart upload.

        On failure the upload is aborted once. If the abort succeeds
        CompleteFailedError is raised; if it fails too, AbortFailedError
        carries both errors.

        Returns:
            The upload result with the final ETag, when the server sent one.

        Raises:
            ProtocolError: If no part has been uploaded or the session is finished.
        """
        self._require_state("complete", UploadState.UPLOADING)
        parts = self.get_uploaded_parts()
        if not parts:
            raise ProtocolError("Cannot complete an upload without parts")

        self.state = UploadState.COMPLETING
        try:
            response = self.client.complete_multipart_upload(self.session, parts)
        except CosError as e:
            logger.error("Completing upload %s failed: %s", self.session.upload_id, e)
            self._abort_after_failure(e)
            raise CompleteFailedError(self.session, e) from e

        self.state = UploadState.DONE
        result = UploadResult(
            session=self.session,
            parts=parts,
            etag=(response or {}).get("ETag"),
            size=self.bytes_uploaded,
        )
        logger.info("Completed upload %s with %d part(s)", self.session.upload_id, len(parts))

        if self.reporter:
            self.reporter.on_upload_complete(result)
        return result

    def abort(self) -> None:
        """Abort the multipart upload and release server-side parts.

        The session is ABORTED afterwards even if the abort call fails,
        so completion is never attempted after an abort was issued.

        Raises:
            ProtocolError: If the upload is not in progress.
            CosError: If the abort call fails.
        """
        self._require_state(
            "abort",
            UploadState.INITIATED,
            UploadState.UPLOADING,
            UploadState.COMPLETING,
        )
        self.state = UploadState.ABORTED
        logger.info("Aborting upload %s", self.session.upload_id)
        self.client.abort_multipart_upload(self.session)

    def _abort_after_failure(self, error: BaseException) -> None:
        """Abort after ``error``; raise AbortFailedError if that fails too."""
        try:
            self.abort()
        except CosError as abort_error:
            logger.error("Aborting upload %s failed: %s", self.session.upload_id, abort_error)
            if self.reporter:
                self.reporter.on_upload_aborted(self.session, abort_error)
            raise AbortFailedError(self.session, error, abort_error) from error

        if self.reporter:
            self.reporter.on_upload_aborted(self.session, error)

    def upload_stream(
        self,
        stream: BinaryIO,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_workers: int = 1,
    ) -> UploadResult:
        """Upload a whole stream and complete the upload.

        Initiates the upload if needed. With ``max_workers`` above 1 parts
        are uploaded from a thread pool; part numbers still follow read
        order, and at most ``max_workers`` chunks are buffered at once.
        If reading the stream or uploading a part fails, the session is
        aborted and the error re-raised (or AbortFailedError if the abort
        fails too).

        Args:
            stream: Binary stream to upload.
            chunk_size: Part size in bytes.
            max_workers: Number of concurrent part uploads.

        Returns:
            The upload result.

        Raises:
            ValueError: If ``chunk_size`` or ``max_workers`` is out of range.
                Nothing is sent to the server in that case.
        """
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        if max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers}")

        if self.state == UploadState.NOT_STARTED:
            self.initiate()

        try:
            if max_workers == 1:
                for chunk in iter_chunks(stream, chunk_size):
                    self.upload_part(chunk)
            else:
                self._upload_concurrently(stream, chunk_size, max_workers)
            if not self.uploaded_parts:
                raise ProtocolError(f"Nothing to upload for {self.bucket}/{self.key}: stream is empty")
        except Exception as e:
            self._abort_after_failure(e)
            raise

        return self.complete()

    def _upload_concurrently(self, stream: BinaryIO, chunk_size: int, max_workers: int) -> None:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            pending = set()
            for chunk in iter_chunks(stream, chunk_size):
                part_number = self.next_part_number()
                pending.add(pool.submit(self.upload_part, chunk, part_number))
                if len(pending) >= max_workers:
                    done, pending = wait(pending, return_when=FIRST_COMPLETED)
                    for future in done:
                        future.result()
            for future in wait(pending).done:
                future.result()

    def __enter__(self) -> "MultipartUpload":
        """Enter context manager - initiates upload."""
        self.initiate()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        """Exit context manager - aborts an open upload on exception."""
        if exc_type is not None and self.state in (UploadState.INITIATED, UploadState.UPLOADING):
            self._abort_after_failure(exc_val)
        return False  # Don't suppress exceptions
