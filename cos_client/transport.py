"""HTTP transport built on httpx.

The transport owns the connection pool and is injected into the client.
It only moves bytes: status checking and decoding belong to the caller.
"""

import logging
from typing import BinaryIO, Optional

import httpx

from cos_client.errors import TransportError
from cos_client.models import Request, Response

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0

# Read size when streaming a response body to a file
STREAM_CHUNK_SIZE = 1024 * 1024


class HttpTransport:
    """Executes Requests with an httpx.Client.

    Can be used as a context manager to close the underlying client.
    """

    def __init__(
        self,
        http_client: Optional[httpx.Client] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.http_client = http_client or httpx.Client(timeout=timeout)

    def execute(
        self,
        request: Request,
        base_url: str,
        headers: Optional[dict[str, str]] = None,
        sink: Optional[BinaryIO] = None,
    ) -> Response:
        """Send a request and return the response.

        Args:
            request: The request to send.
            base_url: Scheme and host the request path is relative to.
            headers: Extra headers (authorization) merged over request.headers.
            sink: If given, a successful response body is streamed into it
                  instead of being buffered; Response.body is then empty.

        Returns:
            The response, whatever its status code.

        Raises:
            TransportError: On connection, timeout or protocol errors.
        """
        url = request.url(base_url)
        all_headers = dict(request.headers)
        if headers:
            all_headers.update(headers)

        logger.debug("%s %s", request.method, url)
        try:
            with self.http_client.stream(
                request.method,
                url,
                headers=all_headers,
                content=request.body or None,
            ) as response:
                if sink is not None and response.is_success:
                    for chunk in response.iter_bytes(STREAM_CHUNK_SIZE):
                        sink.write(chunk)
                    body = b""
                else:
                    body = response.read()
        except httpx.HTTPError as e:
            raise TransportError(f"{request.method} {url} failed: {e}", cause=e) from e

        logger.debug("%s %s -> %d", request.method, url, response.status_code)
        return Response(
            status_code=response.status_code,
            headers=dict(response.headers),
            body=body,
        )

    def close(self) -> None:
        self.http_client.close()

    def __enter__(self) -> "HttpTransport":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False
