"""
S3-compatible object storage client.

SigV4 request signing, paginated object listings, and multipart uploads
for IBM Cloud Object Storage and other S3-compatible services.
"""

__version__ = "0.3.0"

from cos_client.client import CosClient
from cos_client.errors import (
    AbortFailedError,
    AuthenticationError,
    CompleteFailedError,
    CosError,
    DecodeError,
    ProtocolError,
    ResponseError,
    TransportError,
)

__all__ = [
    "CosClient",
    "CosError",
    "TransportError",
    "ResponseError",
    "AuthenticationError",
    "DecodeError",
    "ProtocolError",
    "CompleteFailedError",
    "AbortFailedError",
    "__version__",
]
