"""AWS Signature Version 4 request signing.

Builds the canonical request for an HTTP call, derives a signing key
scoped to a date, region and service, and renders the Authorization
header value:

    AWS4-HMAC-SHA256 Credential=<key>/<scope>,SignedHeaders=<names>,Signature=<hex>

The functions here are pure: for fixed inputs (including the timestamp)
they always produce the same output.
"""

import hashlib
import hmac
import logging
from datetime import datetime, timezone
from typing import Iterable, Mapping, Optional, Union
from urllib.parse import quote

from cos_client.models import Request

logger = logging.getLogger(__name__)

ALGORITHM = "AWS4-HMAC-SHA256"
UNSIGNED_PAYLOAD = "UNSIGNED-PAYLOAD"

# IBM COS accepts "us-standard" for every endpoint
DEFAULT_REGION = "us-standard"
DEFAULT_SERVICE = "s3"

TIMESTAMP_FORMAT = "%Y%m%dT%H%M%SZ"
DATESTAMP_FORMAT = "%Y%m%d"

QueryParams = Union[Mapping[str, Optional[str]], Iterable[tuple[str, Optional[str]]]]


def hexdigest(data: bytes) -> str:
    """Hex-encoded SHA-256 digest of ``data``."""
    return hashlib.sha256(data).hexdigest()


def _hmac(key: bytes, data: str) -> bytes:
    return hmac.new(key, data.encode("utf-8"), hashlib.sha256).digest()


def _uri_encode(value: str) -> str:
    return quote(value, safe="-_.~")


def _to_utc(timestamp: datetime) -> datetime:
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc)


def canonical_uri(path: str) -> str:
    """Return the canonical URI. Paths are expected to be pre-encoded."""
    return path


def canonical_query_string(params: QueryParams) -> str:
    """Sort, encode and join query parameters.

    A flag parameter (value None) is rendered as ``name=``.
    """
    items = params.items() if isinstance(params, Mapping) else params
    pairs = sorted(
        (_uri_encode(name), _uri_encode(value if value is not None else ""))
        for name, value in items
    )
    return "&".join(f"{name}={value}" for name, value in pairs)


def canonical_headers(headers: Mapping[str, str]) -> tuple[str, str]:
    """Return the canonical header block and the signed header list.

    Returns:
        Tuple of (``name:value\\n`` lines sorted by lower-cased name,
        ``;``-joined lower-cased names).
    """
    lowered = sorted((name.lower(), value) for name, value in headers.items())
    block = "".join(f"{name}:{value}\n" for name, value in lowered)
    signed = ";".join(name for name, _ in lowered)
    return block, signed


def canonical_request(
    method: str,
    path: str,
    query_params: QueryParams,
    headers: Mapping[str, str],
    payload_hash: str,
) -> tuple[str, str]:
    """Build the canonical request.

    Returns:
        Tuple of (canonical request string, signed header list).
    """
    header_block, signed_headers = canonical_headers(headers)
    creq = "\n".join([
        method,
        canonical_uri(path),
        canonical_query_string(query_params),
        header_block,
        signed_headers,
        payload_hash,
    ])
    return creq, signed_headers


def credential_scope(
    timestamp: datetime,
    region: str = DEFAULT_REGION,
    service: str = DEFAULT_SERVICE,
) -> str:
    datestamp = _to_utc(timestamp).strftime(DATESTAMP_FORMAT)
    return f"{datestamp}/{region}/{service}/aws4_request"


def string_to_sign(timestamp: datetime, scope: str, creq: str) -> str:
    return "\n".join([
        ALGORITHM,
        _to_utc(timestamp).strftime(TIMESTAMP_FORMAT),
        scope,
        hexdigest(creq.encode("utf-8")),
    ])


def derive_signing_key(
    secret_key: str,
    datestamp: str,
    region: str = DEFAULT_REGION,
    service: str = DEFAULT_SERVICE,
) -> bytes:
    """Derive the signing key for one (date, region, service) scope."""
    date_key = _hmac(f"AWS4{secret_key}".encode("utf-8"), datestamp)
    region_key = _hmac(date_key, region)
    service_key = _hmac(region_key, service)
    return _hmac(service_key, "aws4_request")


def sign(
    access_key_id: str,
    secret_key: str,
    timestamp: datetime,
    method: str,
    path: str,
    query_params: QueryParams,
    headers: Mapping[str, str],
    payload_hash: str,
    region: str = DEFAULT_REGION,
    service: str = DEFAULT_SERVICE,
) -> str:
    """Compute the Authorization header value for a request.

    Args:
        access_key_id: HMAC access key id.
        secret_key: HMAC secret access key.
        timestamp: Request time. Naive datetimes are taken as UTC.
        method: HTTP method.
        path: Pre-encoded request path.
        query_params: Query parameters, as a mapping or (name, value) pairs.
        headers: Headers to sign. Must include ``host`` and ``x-amz-date``.
        payload_hash: Hex SHA-256 of the body, or UNSIGNED-PAYLOAD.
        region: Signing region.
        service: Signing service.

    Returns:
        The Authorization header value.
    """
    creq, signed_headers = canonical_request(
        method, path, query_params, headers, payload_hash
    )
    logger.debug("CanonicalRequest: %r", creq)

    scope = credential_scope(timestamp, region, service)
    to_sign = string_to_sign(timestamp, scope, creq)
    logger.debug("StringToSign: %r", to_sign)

    datestamp = _to_utc(timestamp).strftime(DATESTAMP_FORMAT)
    signing_key = derive_signing_key(secret_key, datestamp, region, service)
    signature = hmac.new(
        signing_key, to_sign.encode("utf-8"), hashlib.sha256
    ).hexdigest()

    return (
        f"{ALGORITHM} Credential={access_key_id}/{scope},"
        f"SignedHeaders={signed_headers},Signature={signature}"
    )


class SigV4Signer:
    """Signs Request objects with a fixed key pair and signing scope."""

    def __init__(
        self,
        access_key_id: str,
        secret_key: str,
        region: str = DEFAULT_REGION,
        service: str = DEFAULT_SERVICE,
    ):
        self.access_key_id = access_key_id
        self.secret_key = secret_key
        self.region = region
        self.service = service

    def sign_request(
        self,
        request: Request,
        host: str,
        timestamp: Optional[datetime] = None,
        unsigned_payload: bool = False,
    ) -> dict[str, str]:
        """Compute the headers that authorize ``request``.

        Every header already on the request is signed, together with
        ``host``, ``x-amz-date`` and ``x-amz-content-sha256``.

        Args:
            request: The request to sign.
            host: Value of the Host header the transport will send.
            timestamp: Signing time, defaults to now.
            unsigned_payload: Use UNSIGNED-PAYLOAD instead of hashing the body.

        Returns:
            Headers to merge into the request, including Authorization.
        """
        if timestamp is None:
            timestamp = datetime.now(timezone.utc)

        payload_hash = UNSIGNED_PAYLOAD if unsigned_payload else hexdigest(request.body)
        signed = {
            "x-amz-date": _to_utc(timestamp).strftime(TIMESTAMP_FORMAT),
            "x-amz-content-sha256": payload_hash,
        }

        to_sign = {name.lower(): value for name, value in request.headers.items()}
        to_sign["host"] = host
        to_sign.update(signed)

        signed["Authorization"] = sign(
            self.access_key_id,
            self.secret_key,
            timestamp,
            request.method,
            request.path,
            request.query,
            to_sign,
            payload_hash,
            region=self.region,
            service=self.service,
        )
        return signed
