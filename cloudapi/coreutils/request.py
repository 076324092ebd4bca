import json
from datetime import date, datetime
from dataclasses import dataclass, field, replace
from http import HTTPStatus
from types import MappingProxyType
from urllib.parse import urlsplit
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import requests
from requests.adapters import HTTPAdapter
from requests.structures import CaseInsensitiveDict
from urllib3.util.retry import Retry

from .errors import ApiError, RateLimitExceeded, error_for_status

# Header contract
AUTHORIZATION_HEADER = "Authorization"
CONTINUATION_HEADER = "Continuation-Token"
RATE_LIMIT_LIMIT_HEADER = "X-RateLimit-Limit"
RATE_LIMIT_REMAINING_HEADER = "X-RateLimit-Remaining"
RATE_LIMIT_RESET_HEADER = "X-RateLimit-Reset"
RETRY_AFTER_HEADER = "Retry-After"

USER_AGENT = "cloudapi-client/1.0"

# Retries are decided by coreutils.retry, not by urllib3
NO_ADAPTER_RETRIES = Retry(total=0, raise_on_status=False, respect_retry_after_header=False)


def new_session(token: str, pool_maxsize: int = 10) -> requests.Session:
    """Create a new requests session carrying the bearer token"""
    session = requests.Session()
    adapter = HTTPAdapter(max_retries=NO_ADAPTER_RETRIES, pool_maxsize=pool_maxsize)
    session.mount("http://", adapter)
    session.mount("https://", adapter)

    # Set default headers
    session.headers.update(
        {
            "User-Agent": USER_AGENT,
            "Accept": "application/json",
            AUTHORIZATION_HEADER: f"Bearer {token}",
        }
    )

    return session


@dataclass(frozen=True)
class RequestDescriptor:
    """
    Immutable description of one API request

    Args:
        method: HTTP method
        path: Path template, e.g. "/organizations/{org_id}/devices"
        path_params: Values for the template; org_id is filled by the client
        query: Query parameters
        body: Optional JSON payload
        expected_status: Status codes that count as success
        items_key: Body key holding a page's items (ignored for list bodies)
        continuation_token: Token replayed to fetch the next page
    """

    method: str
    path: str
    path_params: Mapping[str, str] = field(default_factory=dict)
    query: Mapping[str, str] = field(default_factory=dict)
    body: Optional[Any] = None
    expected_status: Tuple[int, ...] = (200,)
    items_key: str = "data"
    continuation_token: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "method", self.method.upper())
        object.__setattr__(self, "path_params", MappingProxyType(dict(self.path_params)))
        object.__setattr__(self, "query", MappingProxyType(dict(self.query)))
        object.__setattr__(self, "expected_status", tuple(self.expected_status))

    def __hash__(self):
        # body is left out; it is an arbitrary JSON record
        return hash(
            (
                self.method,
                self.path,
                tuple(sorted(self.path_params.items())),
                tuple(sorted(self.query.items())),
                self.expected_status,
                self.items_key,
                self.continuation_token,
            )
        )

    @property
    def endpoint_identity(self) -> str:
        """Rate limits are tracked per method + path template"""
        return f"{self.method} {self.path}"

    def render_path(self, **defaults: str) -> str:
        params = {**defaults, **self.path_params}
        try:
            path = self.path.format(**params)
        except KeyError as e:
            raise ValueError(
                f"Missing path parameter {e.args[0]!r} for {self.path}"
            ) from e

        # the bearer token must only ever go to the configured base URL
        parts = urlsplit(path)
        if parts.scheme or parts.netloc:
            raise ValueError(f"Expected an API path, got an absolute URL: {path!r}")
        return path

    def with_continuation(self, token: str) -> "RequestDescriptor":
        """
        Descriptor for the next page

        The remote service ignores filters once a token is in play, so all
        query parameters are dropped and only the token is sent.
        """
        return replace(self, query={}, continuation_token=token)

    def headers(self) -> Dict[str, str]:
        headers = {}
        if self.continuation_token is not None:
            headers[CONTINUATION_HEADER] = self.continuation_token
        if self.body is not None:
            headers["Content-Type"] = "application/json"
        return headers


@dataclass
class ApiResponse:
    """Parsed body and headers of a successful call"""

    status_code: int
    body: Any
    headers: CaseInsensitiveDict

    @property
    def continuation_token(self) -> Optional[str]:
        token = self.headers.get(CONTINUATION_HEADER)
        return token or None

    def items(self, items_key: str = "data") -> List[Any]:
        """Extract a page's items from the body"""
        if self.body is None:
            return []
        if isinstance(self.body, list):
            return self.body
        if isinstance(self.body, dict):
            if not self.body:
                return []
            if items_key in self.body:
                items = self.body[items_key]
                if items is None:
                    return []
                if isinstance(items, list):
                    return items
            else:
                raise ApiError(
                    f"Response body has no {items_key!r} key "
                    f"(top-level keys: {sorted(self.body)})",
                    status_code=self.status_code,
                    body=self.body,
                )
        raise ApiError(
            f"Response body has no item list under {items_key!r}",
            status_code=self.status_code,
            body=self.body,
        )


def parse_body(response: requests.Response) -> Any:
    """Decode a JSON body; empty bodies become None"""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None


def _fallback_message(status_code: int, reason: Optional[str]) -> str:
    if not reason:
        try:
            reason = HTTPStatus(status_code).phrase
        except ValueError:
            reason = "Unknown Status"
    return f"HTTP {status_code} {reason}"


def extract_error_details(body: Any) -> Tuple[Optional[str], Optional[str]]:
    """
    Pull (code, message) out of an error body

    Handles {"error": {"code", "message"}}, {"code", "message"} and
    {"error": "..."}; anything else yields (None, None).
    """
    if not isinstance(body, dict):
        return None, None

    error = body.get("error")
    if isinstance(error, dict):
        code, message = error.get("code"), error.get("message")
    elif isinstance(error, str):
        code, message = None, error
    else:
        code, message = body.get("code"), body.get("message")

    code = str(code) if code is not None else None
    message = str(message) if message not in (None, "") else None
    return code, message


def build_error(
    response: requests.Response,
    endpoint: Optional[str] = None,
    retry_after: Optional[float] = None,
) -> ApiError:
    """Turn a non-success response into a typed ApiError"""
    body = parse_body(response)
    code, message = extract_error_details(body)
    error_class = error_for_status(response.status_code)
    kwargs = {}
    if error_class is RateLimitExceeded:
        kwargs["retry_after"] = retry_after
    return error_class(
        message or _fallback_message(response.status_code, response.reason),
        status_code=response.status_code,
        code=code,
        endpoint=endpoint,
        body=body if body is not None else response.text or None,
        **kwargs,
    )


class DateTimeEncoder(json.JSONEncoder):
    """Custom JSON encoder for datetime objects"""

    def default(self, obj):
        if isinstance(obj, (date, datetime)):
            return obj.isoformat()
        return super().default(obj)


def encode_body(body: Any) -> Optional[str]:
    if body is None:
        return None
    return json.dumps(body, cls=DateTimeEncoder)


def chunked(records: List[Any], size: int) -> Iterable[List[Any]]:
    for start in range(0, len(records), size):
        yield records[start : start + size]
