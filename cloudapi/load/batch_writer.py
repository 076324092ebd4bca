"""
Batch Writer - Load Layer

Chunked bulk writes with per-item outcomes. A chunk that cannot be
executed fails only its own items; later chunks still run.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Union

import polars as pl
import logging

from ..coreutils.cancel import CancellationToken
from ..coreutils.errors import ApiError, Cancelled
from ..coreutils.request import ApiResponse, RequestDescriptor, chunked
from ..extract.api_client import ApiClient

logger = logging.getLogger(__name__)

# Hard per-request ceiling of the remote service
MAX_CHUNK_SIZE = 1000


class ItemStatus(Enum):
    SUCCEEDED = "succeeded"
    REJECTED = "rejected"  # server refused this item
    CHUNK_FAILED = "chunk_failed"  # the whole request for its chunk failed


@dataclass
class BatchItemResult:
    index: int
    item: Any
    status: ItemStatus
    response: Optional[Dict[str, Any]] = None
    error: Optional[Union[ApiError, str]] = None

    @property
    def ok(self) -> bool:
        return self.status is ItemStatus.SUCCEEDED


@dataclass
class BatchWriteReport:
    results: List[BatchItemResult] = field(default_factory=list)
    chunks_sent: int = 0
    chunks_failed: int = 0

    def __len__(self):
        return len(self.results)

    def __iter__(self):
        return iter(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.status is ItemStatus.SUCCEEDED)

    @property
    def rejected(self) -> int:
        return sum(1 for r in self.results if r.status is ItemStatus.REJECTED)

    @property
    def chunk_failed(self) -> int:
        return sum(1 for r in self.results if r.status is ItemStatus.CHUNK_FAILED)

    @property
    def all_succeeded(self) -> bool:
        return self.succeeded == len(self.results)

    def failed(self) -> List[BatchItemResult]:
        return [r for r in self.results if not r.ok]

    def to_frame(self) -> pl.DataFrame:
        """Per-item summary (index, status, error) as a DataFrame"""
        return pl.DataFrame(
            {
                "index": [r.index for r in self.results],
                "status": [r.status.value for r in self.results],
                "error": [str(r.error) if r.error is not None else None for r in self.results],
            },
            schema={"index": pl.Int64, "status": pl.String, "error": pl.String},
        )


def _item_rejected(outcome: Any) -> Optional[str]:
    """Return the rejection message for a per-item outcome, else None"""
    if not isinstance(outcome, dict):
        return None
    error = outcome.get("error")
    if error:
        if isinstance(error, dict):
            return str(error.get("message") or error.get("code") or error)
        return str(error)
    if outcome.get("ok") is False or outcome.get("success") is False:
        return str(outcome.get("message") or "rejected by server")
    return None


class BatchWriter:
    """Writes records to a bulk endpoint in chunks"""

    def __init__(
        self,
        client: ApiClient,
        descriptor: RequestDescriptor,
        inter_chunk_delay: Optional[float] = None,
        items_field: str = "items",
        results_field: str = "results",
    ):
        """
        Args:
            client: API client to use
            descriptor: Bulk endpoint; its body is replaced per chunk
            inter_chunk_delay: Seconds between chunks (defaults to config)
            items_field: Request body key holding the chunk's records
            results_field: Response body key holding per-item outcomes
        """
        self.client = client
        self.descriptor = descriptor
        self.inter_chunk_delay = (
            client.config.inter_chunk_delay
            if inter_chunk_delay is None
            else inter_chunk_delay
        )
        self.items_field = items_field
        self.results_field = results_field

    def batch_write(
        self,
        items: Union[Iterable[Dict[str, Any]], pl.DataFrame],
        chunk_size: int = MAX_CHUNK_SIZE,
        cancel: Optional[CancellationToken] = None,
    ) -> BatchWriteReport:
        """
        Write all items, chunk by chunk, reporting one result per item

        Args:
            items: Records to write, or a DataFrame (one record per row)
            chunk_size: Records per request, at most 1000
            cancel: Optional cancellation token

        Returns:
            BatchWriteReport: Results in input order

        Raises:
            ValueError: If chunk_size is outside 1..1000
            Cancelled: If the caller cancelled mid-batch
        """
        if not 1 <= chunk_size <= MAX_CHUNK_SIZE:
            raise ValueError(
                f"chunk_size must be between 1 and {MAX_CHUNK_SIZE}, got {chunk_size}"
            )

        if isinstance(items, pl.DataFrame):
            records = items.to_dicts()
        else:
            records = list(items)

        report = BatchWriteReport()
        chunks = list(chunked(records, chunk_size))
        endpoint = self.descriptor.endpoint_identity
        logger.info(
            f"Writing {len(records)} records to {endpoint} in {len(chunks)} chunk(s)"
        )

        offset = 0
        for i, chunk in enumerate(chunks, 1):
            if i > 1 and self.inter_chunk_delay > 0:
                self.client.pause(self.inter_chunk_delay, cancel, endpoint)

            report.chunks_sent += 1
            try:
                response = self.client.execute(self._chunk_descriptor(chunk), cancel)
                chunk_results = self._item_results(chunk, offset, response)
            except Cancelled:
                logger.warning(f"⚠️ Batch write cancelled at chunk {i}/{len(chunks)}")
                raise
            except ApiError as e:
                logger.error(f"❌ Chunk {i}/{len(chunks)} failed: {e}")
                report.chunks_failed += 1
                chunk_results = [
                    BatchItemResult(offset + j, item, ItemStatus.CHUNK_FAILED, error=e)
                    for j, item in enumerate(chunk)
                ]
            else:
                logger.info(
                    f"✅ Chunk {i}/{len(chunks)}: "
                    f"{sum(1 for r in chunk_results if r.ok)}/{len(chunk)} accepted"
                )

            report.results.extend(chunk_results)
            offset += len(chunk)

        logger.info(
            f"Batch write finished: {report.succeeded} succeeded, "
            f"{report.rejected} rejected, {report.chunk_failed} in failed chunks"
        )
        return report

    def _chunk_descriptor(self, chunk: List[Dict[str, Any]]) -> RequestDescriptor:
        body = dict(self.descriptor.body or {})
        body[self.items_field] = chunk
        return replace(self.descriptor, body=body, continuation_token=None)

    def _item_results(
        self, chunk: List[Any], offset: int, response: ApiResponse
    ) -> List[BatchItemResult]:
        body = response.body
        outcomes = body.get(self.results_field) if isinstance(body, dict) else None

        if outcomes is None:
            return [
                BatchItemResult(offset + j, item, ItemStatus.SUCCEEDED)
                for j, item in enumerate(chunk)
            ]

        if not isinstance(outcomes, list) or len(outcomes) != len(chunk):
            got = len(outcomes) if isinstance(outcomes, list) else type(outcomes).__name__
            raise ApiError(
                f"Expected {len(chunk)} per-item results, got {got}",
                status_code=response.status_code,
                endpoint=self.descriptor.endpoint_identity,
                body=body,
            )

        results = []
        for j, (item, outcome) in enumerate(zip(chunk, outcomes)):
            message = _item_rejected(outcome)
            if message is None:
                results.append(
                    BatchItemResult(
                        offset + j,
                        item,
                        ItemStatus.SUCCEEDED,
                        response=outcome if isinstance(outcome, dict) else None,
                    )
                )
            else:
                results.append(
                    BatchItemResult(
                        offset + j,
                        item,
                        ItemStatus.REJECTED,
                        response=outcome if isinstance(outcome, dict) else None,
                        error=message,
                    )
                )
        return results


def batch_write(
    client: ApiClient,
    descriptor: RequestDescriptor,
    items: Union[Iterable[Dict[str, Any]], pl.DataFrame],
    chunk_size: int = MAX_CHUNK_SIZE,
    cancel: Optional[CancellationToken] = None,
) -> BatchWriteReport:
    """Convenience function for one-off batch writes"""
    return BatchWriter(client, descriptor).batch_write(items, chunk_size, cancel)
