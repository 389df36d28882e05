"""Credential providers and request authorization.

Two authorization modes are supported:

- Bearer: ``Authorization: Bearer <token>`` with virtual-hosted style
  addressing (``https://{bucket}.{endpoint}/{key}``). Tokens come from a
  TokenProvider, e.g. an IBM Cloud IAM API key exchange.
- HMAC: AWS SigV4 signed headers with path style addressing
  (``https://{endpoint}/{bucket}/{key}``).
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

import httpx

from cos_client.errors import AuthenticationError, DecodeError, TransportError
from cos_client.models import Request
from cos_client.signing import DEFAULT_REGION, DEFAULT_SERVICE, SigV4Signer

logger = logging.getLogger(__name__)

IAM_TOKEN_URL = "https://iam.cloud.ibm.com/identity/token"
IAM_GRANT_TYPE = "urn:ibm:params:oauth:grant-type:apikey"

# Refresh tokens this many seconds before they expire
TOKEN_EXPIRY_MARGIN = 60


class TokenProvider(ABC):
    """Source of bearer tokens. Must be safe to call once per request."""

    @abstractmethod
    def get_current_token(self) -> str:
        """Return a currently valid bearer token."""
        pass


class StaticTokenProvider(TokenProvider):
    """Provider for a token obtained out of band."""

    def __init__(self, token: str):
        self._token = token

    def get_current_token(self) -> str:
        return self._token


class IamTokenProvider(TokenProvider):
    """Exchanges an IBM Cloud API key for IAM access tokens.

    The token is cached until shortly before its ``expiration`` and
    refreshed on demand. Safe to share between threads.
    """

    def __init__(
        self,
        api_key: str,
        http_client: Optional[httpx.Client] = None,
        token_url: str = IAM_TOKEN_URL,
        clock=time.time,
    ):
        self.api_key = api_key
        self.token_url = token_url
        self._http_client = http_client or httpx.Client()
        self._clock = clock
        self._lock = threading.Lock()
        self._token: Optional[str] = None
        self._expires_at = 0.0

    def get_current_token(self) -> str:
        with self._lock:
            if self._token is None or self._clock() >= self._expires_at - TOKEN_EXPIRY_MARGIN:
                self._refresh()
            return self._token

    def _refresh(self) -> None:
        logger.debug("Requesting IAM token from %s", self.token_url)
        try:
            response = self._http_client.post(
                self.token_url,
                data={"grant_type": IAM_GRANT_TYPE, "apikey": self.api_key},
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            raise TransportError(f"IAM token request failed: {e}", cause=e) from e

        if not response.is_success:
            raise AuthenticationError(
                response.status_code, response.text, method="POST", url=self.token_url
            )

        try:
            payload = response.json()
            self._token = payload["access_token"]
            expiration = payload.get("expiration")
            if expiration is None:
                expiration = self._clock() + float(payload.get("expires_in", 0))
            self._expires_at = float(expiration)
        except (ValueError, KeyError, TypeError) as e:
            raise DecodeError(f"Unexpected IAM token response: {e}", response.text) from e


@dataclass(frozen=True)
class AccessKeyCredentials:
    """HMAC key pair for SigV4 signing."""

    access_key_id: str
    secret_key: str


def split_endpoint(endpoint: str) -> tuple[str, str]:
    """Split an endpoint into (scheme, host). Defaults to https."""
    if "://" in endpoint:
        scheme, host = endpoint.split("://", 1)
    else:
        scheme, host = "https", endpoint
    return scheme, host.rstrip("/")


def encode_key(key: str) -> str:
    """Percent-encode an object key for use in a request path.

    Segments that are exactly ``.`` or ``..`` are escaped as ``%2E`` so the
    HTTP client does not collapse them and the signed path stays the path
    that is sent.
    """
    return "/".join(
        "%2E" * len(segment) if segment in (".", "..") else quote(segment, safe="-_.~")
        for segment in key.split("/")
    )


class Authorizer(ABC):
    """Maps buckets and keys to URLs and authorizes requests."""

    def __init__(self, endpoint: str):
        self.scheme, self.endpoint = split_endpoint(endpoint)

    @abstractmethod
    def address(self, bucket: Optional[str], key: str = "") -> tuple[str, str]:
        """Return (base_url, path) for an object, a bucket, or the service root."""
        pass

    @abstractmethod
    def authorize(self, request: Request, base_url: str, unsigned_payload: bool = False) -> dict[str, str]:
        """Return the headers that authorize ``request``."""
        pass


class BearerAuthorizer(Authorizer):
    """Bearer token authorization with virtual-hosted style URLs."""

    def __init__(self, endpoint: str, token_provider: TokenProvider):
        super().__init__(endpoint)
        self.token_provider = token_provider

    def address(self, bucket: Optional[str], key: str = "") -> tuple[str, str]:
        if bucket is None:
            return f"{self.scheme}://{self.endpoint}", "/"
        return f"{self.scheme}://{bucket}.{self.endpoint}", "/" + encode_key(key)

    def authorize(self, request: Request, base_url: str, unsigned_payload: bool = False) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token_provider.get_current_token()}"}


class HmacAuthorizer(Authorizer):
    """SigV4 authorization with path style URLs."""

    def __init__(
        self,
        endpoint: str,
        credentials: AccessKeyCredentials,
        region: str = DEFAULT_REGION,
        service: str = DEFAULT_SERVICE,
    ):
        super().__init__(endpoint)
        self.signer = SigV4Signer(
            credentials.access_key_id,
            credentials.secret_key,
            region=region,
            service=service,
        )

    def address(self, bucket: Optional[str], key: str = "") -> tuple[str, str]:
        base_url = f"{self.scheme}://{self.endpoint}"
        if bucket is None:
            return base_url, "/"
        return base_url, f"/{bucket}/" + encode_key(key)

    def authorize(self, request: Request, base_url: str, unsigned_payload: bool = False) -> dict[str, str]:
        _, host = split_endpoint(base_url)
        return self.signer.sign_request(request, host, unsigned_payload=unsigned_payload)
