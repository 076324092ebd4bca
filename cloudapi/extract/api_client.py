"""
Cloud API Client - Pure I/O Operations

Authenticated calls against the organization-scoped API with client-side
throttling, typed errors and bounded retries. Pagination lives in
extract.pagination; this module performs single logical calls.
"""

import time
from typing import Any, Iterator, Optional
from urllib.parse import urljoin

import requests
import logging

from ..coreutils import retry
from ..coreutils.cancel import CancellationToken
from ..coreutils.env import ClientConfig
from ..coreutils.errors import ApiError, Cancelled, TransportError
from ..coreutils.rate_limit import RateLimitKey, RateLimitStore
from ..coreutils.request import (
    ApiResponse,
    RequestDescriptor,
    build_error,
    encode_body,
    new_session,
    parse_body,
)
from ..coreutils.retry import RetryAttempt, RetryPolicy, decide
from ..coreutils.time import Clock
from .pagination import PageResult, PageStream

logger = logging.getLogger(__name__)


class ApiClient:
    """Client for the cloud API"""

    def __init__(
        self,
        config: ClientConfig,
        session: Optional[requests.Session] = None,
        clock: Optional[Clock] = None,
        rate_limits: Optional[RateLimitStore] = None,
        policy: Optional[RetryPolicy] = None,
    ):
        self.config = config
        self.clock = clock or Clock()
        self.session = session or new_session(config.token)
        self.rate_limits = rate_limits or RateLimitStore(self.clock)
        self.policy = policy or RetryPolicy.from_config(config)
        self.base_url = config.base_url.rstrip("/") + "/"

    @classmethod
    def from_env(cls, **overrides) -> "ApiClient":
        """Convenience constructor reading CLOUDAPI_* variables"""
        return cls(ClientConfig.from_env(**overrides))

    def __enter__(self) -> "ApiClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self.session.close()

    def rate_limit_key(self, descriptor: RequestDescriptor) -> RateLimitKey:
        org_id = descriptor.path_params.get("org_id", self.config.org_id)
        return (org_id, descriptor.endpoint_identity)

    def url_for(self, descriptor: RequestDescriptor) -> str:
        path = descriptor.render_path(org_id=self.config.org_id)
        return urljoin(self.base_url, path.lstrip("/"))

    def execute(
        self,
        descriptor: RequestDescriptor,
        cancel: Optional[CancellationToken] = None,
    ) -> ApiResponse:
        """
        Perform one logical call, retrying rate-limited and transient failures

        Args:
            descriptor: What to call
            cancel: Optional cancellation token / deadline

        Returns:
            ApiResponse: Parsed body and headers of the successful attempt

        Raises:
            ApiError: A subclass naming the terminal failure kind
        """
        endpoint = descriptor.endpoint_identity
        url = self.url_for(descriptor)
        key = self.rate_limit_key(descriptor)
        state = RetryAttempt()

        # retries wait out their own decided delay instead
        self._throttle(key, cancel, endpoint)

        while True:
            state.attempt += 1

            try:
                return self._attempt(descriptor, url, key, cancel)
            except Cancelled:
                raise
            except ApiError as error:
                decision = decide(state.attempt, error, self.policy)
                state.record(error, decision)

                if isinstance(decision, retry.Fail):
                    if error.kind in retry.RETRYABLE_KINDS:
                        logger.error(
                            f"❌ {endpoint} failed after {state.attempt} attempt(s): {error}"
                        )
                    raise decision.error

                logger.warning(
                    f"⚠️ {endpoint} attempt {state.attempt}/{self.policy.max_attempts} "
                    f"failed ({error.kind.value}), retrying in {decision.delay:.2f}s..."
                )
                self.pause(decision.delay, cancel, endpoint)

    def _attempt(
        self,
        descriptor: RequestDescriptor,
        url: str,
        key: RateLimitKey,
        cancel: Optional[CancellationToken],
    ) -> ApiResponse:
        endpoint = descriptor.endpoint_identity
        timeout = self.config.timeout
        if cancel is not None:
            self._check_cancelled(cancel, endpoint)
            remaining = cancel.remaining()
            if remaining is not None:
                if remaining <= 0:
                    raise Cancelled("Deadline passed before the request", endpoint=endpoint)
                timeout = min(timeout, remaining)

        start = time.monotonic()
        try:
            response = self.session.request(
                descriptor.method,
                url,
                params=dict(descriptor.query) or None,
                data=encode_body(descriptor.body),
                headers=descriptor.headers(),
                timeout=timeout,
            )
        except requests.exceptions.RequestException as e:
            # in-flight attempt abandoned because the caller gave up meanwhile
            if cancel is not None:
                self._check_cancelled(cancel, endpoint)
            raise TransportError(
                f"{type(e).__name__}: {e}", endpoint=endpoint
            ) from e

        retry_after = self.rate_limits.update(
            key, response.headers, response.status_code
        )
        logger.debug(
            f"{endpoint} -> {response.status_code} in {time.monotonic() - start:.2f}s"
        )

        if response.status_code in descriptor.expected_status:
            return ApiResponse(
                status_code=response.status_code,
                body=parse_body(response),
                headers=response.headers,
            )

        if cancel is not None:
            self._check_cancelled(cancel, endpoint)
        raise build_error(response, endpoint=endpoint, retry_after=retry_after)

    def _throttle(
        self,
        key: RateLimitKey,
        cancel: Optional[CancellationToken],
        endpoint: str,
    ) -> None:
        wait = min(self.rate_limits.wait_time(key), self.policy.max_retry_after)
        if wait > 0:
            logger.info(f"🔄 Throttling {endpoint} for {wait:.2f}s (rate limit)")
            self.pause(wait, cancel, endpoint)

    def pause(
        self,
        seconds: float,
        cancel: Optional[CancellationToken],
        endpoint: str,
    ) -> None:
        """Sleep, waking early and raising Cancelled if `cancel` fires"""
        if cancel is None:
            self.clock.sleep(seconds)
            return

        remaining = cancel.remaining()
        if remaining is not None and remaining < seconds:
            self.clock.sleep(remaining, cancel.event)
            cancel.cancel()
        else:
            self.clock.sleep(seconds, cancel.event)
        self._check_cancelled(cancel, endpoint)

    @staticmethod
    def _check_cancelled(cancel: CancellationToken, endpoint: str) -> None:
        if cancel.cancelled:
            raise Cancelled("Operation cancelled by caller", endpoint=endpoint)

    def pages(
        self,
        descriptor: RequestDescriptor,
        cancel: Optional[CancellationToken] = None,
    ) -> Iterator[PageResult]:
        """Iterate page by page, following continuation tokens"""
        return PageStream(self, descriptor, cancel).pages()

    def stream(
        self,
        descriptor: RequestDescriptor,
        cancel: Optional[CancellationToken] = None,
    ) -> Iterator[Any]:
        """
        Lazily yield every item across all pages, in server order

        The iterator is forward-only; to start over, call stream() again
        with the original descriptor.

        Raises:
            ContinuationExpired: If the server rejected a continuation token
            ApiError: Any other terminal failure
        """
        return iter(PageStream(self, descriptor, cancel))
