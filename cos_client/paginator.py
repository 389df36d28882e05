"""Lazy iteration over paginated object listings.

ObjectListing hides list-type=2 continuation tokens behind a plain
iterator. Pages are fetched on demand through an injected callable, so
the iterator can be driven without a network in tests.
"""

import logging
from collections import deque
from typing import Callable, Optional

from cos_client.errors import CosError
from cos_client.models import ListingPage, ObjectDescriptor

logger = logging.getLogger(__name__)

# fetch_page(continuation_token, prefix, start_after) -> ListingPage
PageFetcher = Callable[[Optional[str], Optional[str], Optional[str]], ListingPage]


class ObjectListing:
    """Forward-only, non-restartable sequence of ObjectDescriptors.

    State is the buffer of items not yet yielded, the last continuation
    token, and whether the final page has been seen. A failed page fetch
    is logged, stored on ``error`` and ends the iteration; items already
    buffered are still yielded first. Once exhausted the iterator keeps
    raising StopIteration.

    Args:
        fetch_page: Callable returning one page for a continuation token.
        prefix: Only list keys starting with this prefix.
        start_after: Only list keys after this key.
    """

    def __init__(
        self,
        fetch_page: PageFetcher,
        prefix: Optional[str] = None,
        start_after: Optional[str] = None,
    ):
        self._fetch_page = fetch_page
        self.prefix = prefix
        self.start_after = start_after
        self.continuation_token: Optional[str] = None
        self.completed = False
        self.error: Optional[Exception] = None
        self.pages_fetched = 0
        self._buffer: deque[ObjectDescriptor] = deque()

    def __iter__(self) -> "ObjectListing":
        return self

    def __next__(self) -> ObjectDescriptor:
        while not self._buffer:
            if self.completed:
                raise StopIteration
            self._fetch_next_page()
        return self._buffer.popleft()

    def _fetch_next_page(self) -> None:
        try:
            page = self._fetch_page(self.continuation_token, self.prefix, self.start_after)
        except CosError as e:
            logger.error("Listing failed after %d page(s): %s", self.pages_fetched, e)
            self.error = e
            self.completed = True
            return

        self.pages_fetched += 1
        self._buffer.extend(page.items)

        if page.next_continuation_token:
            self.continuation_token = page.next_continuation_token
        else:
            self.completed = True
