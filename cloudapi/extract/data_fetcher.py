"""
Data Fetcher - Extract Layer

Helpers that collect streamed API records into Polars DataFrames.
"""

from typing import Optional

import polars as pl
import logging

from ..coreutils.cancel import CancellationToken
from ..coreutils.request import RequestDescriptor
from .api_client import ApiClient

logger = logging.getLogger(__name__)


def fetch_frame(
    client: ApiClient,
    descriptor: RequestDescriptor,
    schema: Optional[pl.Schema] = None,
    limit: Optional[int] = None,
    cancel: Optional[CancellationToken] = None,
) -> pl.DataFrame:
    """
    Stream every item of a paginated endpoint into a DataFrame

    Unlike ApiClient.stream(), this holds the whole result set in memory.

    Args:
        client: API client to use
        descriptor: Initial request (filters included)
        schema: Optional Polars schema for the records
        limit: Stop after this many records
        cancel: Optional cancellation token

    Returns:
        pl.DataFrame: One row per item
    """
    logger.info(f"Fetching {descriptor.endpoint_identity} into a DataFrame")

    records = []
    for item in client.stream(descriptor, cancel):
        records.append(item)
        if limit is not None and len(records) >= limit:
            break

    if not records:
        return pl.DataFrame(schema=schema) if schema else pl.DataFrame()

    # strict=False to tolerate mixed types across pages
    df = pl.DataFrame(records, schema=schema, strict=False, infer_schema_length=None)
    logger.info(f"✅ Fetched {df.height} records from {descriptor.endpoint_identity}")
    return df
