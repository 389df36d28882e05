"""XML encoding and decoding of S3 request and response bodies.

Uses xmltodict. Repeated elements are always decoded as lists so that a
single <Contents> or <Bucket> entry does not change the shape. Element
text is kept verbatim: object keys may start or end with whitespace.
"""

from typing import Any, Iterable

import xmltodict
from xml.parsers.expat import ExpatError

from cos_client.errors import DecodeError, ResponseError
from cos_client.models import Bucket, ListingPage, ObjectDescriptor, Part

FORCE_LIST = ("Bucket", "Contents", "Deleted", "Error", "Object", "Part")


def _load(body: str, root: str) -> dict[str, Any]:
    try:
        return xmltodict.parse(body, force_list=FORCE_LIST, strip_whitespace=False)
    except ExpatError as e:
        raise DecodeError(f"Malformed XML in {root} response: {e}", body) from e


def _element(value: Any, name: str, body: str) -> dict[str, Any]:
    """Return a container element as a dict; empty or blank elements give {}."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return {}
    if not isinstance(value, dict):
        raise DecodeError(f"Unexpected <{name}> element: {value!r}", body)
    return value


def _parse(body: str, root: str) -> dict[str, Any]:
    """Parse ``body`` and return the element named ``root``.

    A 200 response carrying an <Error> document is turned into a
    ResponseError, as S3 does for failed CompleteMultipartUpload calls.
    """
    document = _load(body, root)

    if "Error" in document:
        raise ResponseError(200, body)

    if root not in document:
        found = ", ".join(document) or "nothing"
        raise DecodeError(f"Expected <{root}> document, found {found}", body)

    return _element(document[root], root, body)


def _require(element: dict[str, Any], name: str, context: str, body: str) -> Any:
    value = element.get(name)
    if value is None:
        raise DecodeError(f"Missing field `{name}` in {context}", body)
    return value


def _to_int(value: Any, name: str, body: str) -> int:
    try:
        return int(value.strip())
    except (AttributeError, ValueError) as e:
        raise DecodeError(f"Field `{name}` is not an integer: {value!r}", body) from e


def decode_list_buckets(body: str) -> list[Bucket]:
    """Decode a ListAllMyBucketsResult document."""
    result = _parse(body, "ListAllMyBucketsResult")
    buckets = _element(result.get("Buckets"), "Buckets", body)

    entries = [_element(entry, "Bucket", body) for entry in buckets.get("Bucket", [])]
    return [
        Bucket(
            name=_require(entry, "Name", "Bucket", body),
            creation_date=_require(entry, "CreationDate", "Bucket", body),
        )
        for entry in entries
    ]


def decode_list_objects(body: str) -> ListingPage:
    """Decode a ListBucketResult (list-type=2) document.

    An empty bucket has no <Contents> elements; that decodes to an
    empty page, not an error.
    """
    result = _parse(body, "ListBucketResult")

    items = []
    for entry in result.get("Contents", []):
        entry = _element(entry, "Contents", body)
        items.append(ObjectDescriptor(
            key=_require(entry, "Key", "Contents", body),
            last_modified=_require(entry, "LastModified", "Contents", body),
            etag=_require(entry, "ETag", "Contents", body),
            size=_to_int(_require(entry, "Size", "Contents", body), "Size", body),
            storage_class=entry.get("StorageClass") or "STANDARD",
        ))

    key_count = result.get("KeyCount")
    max_keys = result.get("MaxKeys")

    return ListingPage(
        items=items,
        next_continuation_token=result.get("NextContinuationToken") or None,
        key_count=_to_int(key_count, "KeyCount", body) if key_count is not None else len(items),
        max_keys=_to_int(max_keys, "MaxKeys", body) if max_keys is not None else 0,
    )


def decode_initiate_multipart_upload(body: str) -> str:
    """Decode an InitiateMultipartUploadResult and return the upload id."""
    result = _parse(body, "InitiateMultipartUploadResult")
    return _require(result, "UploadId", "InitiateMultipartUploadResult", body)


def decode_complete_multipart_upload(body: str) -> dict[str, Any]:
    """Decode a CompleteMultipartUploadResult.

    Returns:
        The result fields (Location, Bucket, Key, ETag) that were present.
    """
    result = _parse(body, "CompleteMultipartUploadResult")
    return {name: result[name] for name in ("Location", "Bucket", "Key", "ETag") if name in result}


def decode_delete_result(body: str) -> list[dict[str, str]]:
    """Decode a DeleteResult document.

    Returns:
        One dict per failed key with Key, Code and Message.
    """
    document = _load(body, "DeleteResult")

    if "DeleteResult" not in document:
        raise DecodeError("Expected <DeleteResult> document", body)

    result = _element(document["DeleteResult"], "DeleteResult", body)
    errors = [_element(error, "Error", body) for error in result.get("Error", [])]
    return [
        {
            "Key": error.get("Key", ""),
            "Code": error.get("Code", ""),
            "Message": error.get("Message", ""),
        }
        for error in errors
    ]


def encode_complete_multipart_upload(parts: Iterable[Part]) -> str:
    """Render the CompleteMultipartUpload body for ``parts`` in ascending order."""
    document = {
        "CompleteMultipartUpload": {
            "Part": [
                {"ETag": part.etag, "PartNumber": str(part.part_number)}
                for part in sorted(parts)
            ],
        },
    }
    return xmltodict.unparse(document, full_document=False)


def encode_delete_objects(keys: Iterable[str], quiet: bool = True) -> str:
    """Render a multi-object Delete body."""
    document = {
        "Delete": {
            "Quiet": "true" if quiet else "false",
            "Object": [{"Key": key} for key in keys],
        },
    }
    return xmltodict.unparse(document, full_document=False)
