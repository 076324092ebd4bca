"""
Continuation-token pagination.

PageStream owns the continuation state of one traversal. Consumers see a
flat item sequence (or whole pages via pages()) and never touch tokens.
"""

from dataclasses import dataclass
from typing import Any, Iterator, List, Optional
import logging

from ..coreutils.cancel import CancellationToken
from ..coreutils.errors import Cancelled, ContinuationExpired, ValidationError
from ..coreutils.request import RequestDescriptor

logger = logging.getLogger(__name__)


@dataclass
class PageResult:
    items: List[Any]
    next_token: Optional[str]
    page_number: int


class PageStream:
    """Forward-only, single-use traversal of a paginated endpoint"""

    def __init__(
        self,
        client,
        descriptor: RequestDescriptor,
        cancel: Optional[CancellationToken] = None,
    ):
        self.client = client
        self.descriptor = descriptor
        self.cancel = cancel
        self._started = False

    def __iter__(self) -> Iterator[Any]:
        for page in self.pages():
            yield from page.items

    def pages(self) -> Iterator[PageResult]:
        if self._started:
            raise RuntimeError(
                "PageStream is single-use; start a new stream from the original request"
            )
        self._started = True
        return self._pages()

    def _pages(self) -> Iterator[PageResult]:
        current = self.descriptor
        page_number = 0
        total = 0

        while True:
            if self.cancel is not None and self.cancel.cancelled:
                raise Cancelled(
                    "Stream cancelled by caller",
                    endpoint=self.descriptor.endpoint_identity,
                )

            response = self._fetch(current)
            page_number += 1
            items = response.items(self.descriptor.items_key)
            token = response.continuation_token
            total += len(items)

            logger.debug(
                f"{self.descriptor.endpoint_identity} page {page_number}: "
                f"{len(items)} items, more={token is not None}"
            )
            yield PageResult(items=items, next_token=token, page_number=page_number)

            if token is None:
                logger.info(
                    f"✅ Streamed {total} items from {self.descriptor.endpoint_identity} "
                    f"in {page_number} page(s)"
                )
                return

            if page_number == 1 and self.descriptor.query:
                logger.debug(
                    f"Dropping query parameters {sorted(self.descriptor.query)} "
                    f"on continuation requests"
                )
            current = self.descriptor.with_continuation(token)

    def _fetch(self, descriptor: RequestDescriptor):
        try:
            return self.client.execute(descriptor, self.cancel)
        except ValidationError as error:
            if descriptor.continuation_token is None:
                raise
            logger.warning(
                f"⚠️ Continuation token rejected by {descriptor.endpoint_identity}: {error}"
            )
            raise ContinuationExpired(
                f"Continuation token rejected ({error.message}); restart the stream",
                descriptor=self.descriptor,
                status_code=error.status_code,
                code=error.code,
                endpoint=error.endpoint,
                body=error.body,
            ) from error
