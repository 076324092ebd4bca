"""
Main Entry Point - cloudapi command line

Small wrapper around ApiClient for ad-hoc reads and bulk writes.
Credentials come from CLOUDAPI_* environment variables (or .env).
"""

import json
import sys
from typing import Dict, List, Optional

from .coreutils.errors import ApiError
from .coreutils.logging import setup_logging
from .coreutils.request import DateTimeEncoder, RequestDescriptor
from .extract.api_client import ApiClient
from .load.batch_writer import BatchWriter
import logging

logger = logging.getLogger(__name__)


def parse_params(pairs: Optional[List[str]]) -> Dict[str, str]:
    """Turn ["key=value", ...] into a dict"""
    params = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Expected key=value, got {pair!r}")
        params[key] = value
    return params


def read_ndjson(path: str) -> List[dict]:
    records = []
    with open(path, "r") as f:
        for line_number, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                records.append(json.loads(line))
            except ValueError as e:
                raise ValueError(f"{path}:{line_number}: invalid JSON: {e}") from e
    return records


def run_get(client: ApiClient, path: str, params: Dict[str, str], out=sys.stdout) -> int:
    response = client.execute(RequestDescriptor("GET", path, query=params))
    out.write(json.dumps(response.body, cls=DateTimeEncoder, indent=2) + "\n")
    return 0


def run_stream(
    client: ApiClient,
    path: str,
    params: Dict[str, str],
    limit: Optional[int] = None,
    out=sys.stdout,
) -> int:
    count = 0
    for item in client.stream(RequestDescriptor("GET", path, query=params)):
        out.write(json.dumps(item, cls=DateTimeEncoder) + "\n")
        count += 1
        if limit is not None and count >= limit:
            break
    logger.info(f"📊 Wrote {count} items")
    return 0


def run_batch(
    client: ApiClient,
    path: str,
    file_path: str,
    chunk_size: int,
    method: str = "POST",
    out=sys.stdout,
) -> int:
    records = read_ndjson(file_path)
    writer = BatchWriter(client, RequestDescriptor(method, path, expected_status=(200, 201, 207)))
    report = writer.batch_write(records, chunk_size=chunk_size)

    summary = {
        "total": len(report),
        "succeeded": report.succeeded,
        "rejected": report.rejected,
        "chunk_failed": report.chunk_failed,
        "failures": [
            {"index": r.index, "status": r.status.value, "error": str(r.error)}
            for r in report.failed()
        ],
    }
    out.write(json.dumps(summary, indent=2) + "\n")
    return 0 if report.all_succeeded else 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    import argparse

    parser = argparse.ArgumentParser(description="Cloud API client")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    get_parser = subparsers.add_parser("get", help="Fetch a single response")
    get_parser.add_argument("path", help="Path template, e.g. /organizations/{org_id}/devices")
    get_parser.add_argument("--param", action="append", help="Query parameter key=value")

    stream_parser = subparsers.add_parser("stream", help="Stream all items as JSON lines")
    stream_parser.add_argument("path")
    stream_parser.add_argument("--param", action="append", help="Query parameter key=value")
    stream_parser.add_argument("--limit", type=int, default=None, help="Stop after N items")

    batch_parser = subparsers.add_parser("batch", help="Write NDJSON records in chunks")
    batch_parser.add_argument("path")
    batch_parser.add_argument("file", help="NDJSON file, one record per line")
    batch_parser.add_argument("--chunk-size", type=int, default=1000)
    batch_parser.add_argument("--method", default="POST")

    args = parser.parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    try:
        with ApiClient.from_env() as client:
            if args.command == "get":
                return run_get(client, args.path, parse_params(args.param))
            if args.command == "stream":
                return run_stream(client, args.path, parse_params(args.param), args.limit)
            return run_batch(client, args.path, args.file, args.chunk_size, args.method)
    except ApiError as e:
        logger.error(f"❌ {type(e).__name__}: {e}")
        return 2
    except ValueError as e:
        logger.error(f"❌ {e}")
        return 2
    except KeyboardInterrupt:
        logger.info("🛑 Stopped by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
