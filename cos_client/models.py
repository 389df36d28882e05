"""Data models for the object storage client."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional
from urllib.parse import quote


@dataclass
class Request:
    """An HTTP request before authorization.

    The same Request is used to compute the signature and to send the
    call, so both see identical method, path, query and headers.

    ``path`` must already be percent-encoded. A query value of None is a
    bare flag such as ``?uploads``.
    """

    method: str
    path: str = "/"
    query: list[tuple[str, Optional[str]]] = field(default_factory=list)
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def query_string(self) -> str:
        """Render the query string as sent on the wire (no leading '?')."""
        parts = []
        for name, value in self.query:
            if value is None:
                parts.append(quote(name, safe="-_.~"))
            else:
                parts.append(f"{quote(name, safe='-_.~')}={quote(value, safe='-_.~')}")
        return "&".join(parts)

    def url(self, base_url: str) -> str:
        """Build the absolute URL for this request against ``base_url``."""
        url = base_url.rstrip("/") + self.path
        query = self.query_string()
        if query:
            url = f"{url}?{query}"
        return url


@dataclass
class Response:
    """An HTTP response as returned by the transport."""

    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


@dataclass(frozen=True)
class Bucket:
    """A bucket entry from a ListAllMyBucketsResult."""

    name: str
    creation_date: str


@dataclass(frozen=True)
class ObjectDescriptor:
    """An object entry from a ListBucketResult."""

    key: str
    last_modified: str
    etag: str
    size: int
    storage_class: str


@dataclass
class ListingPage:
    """One page of a list-type=2 object listing."""

    items: list[ObjectDescriptor] = field(default_factory=list)
    next_continuation_token: Optional[str] = None
    key_count: int = 0
    max_keys: int = 0


@dataclass(frozen=True)
class UploadSession:
    """An in-flight multipart upload. ``upload_id`` is opaque."""

    bucket: str
    key: str
    upload_id: str


@dataclass(frozen=True, order=True)
class Part:
    """An uploaded part of a multipart upload, ordered by part number."""

    part_number: int
    etag: str


class UploadState(Enum):
    """Lifecycle states of a multipart upload."""

    NOT_STARTED = "not_started"
    INITIATED = "initiated"
    UPLOADING = "uploading"
    COMPLETING = "completing"
    DONE = "done"
    ABORTED = "aborted"


@dataclass
class UploadResult:
    """Outcome of a finished multipart upload."""

    session: UploadSession
    parts: list[Part]
    etag: Optional[str] = None
    size: int = 0
