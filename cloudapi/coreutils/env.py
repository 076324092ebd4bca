from dataclasses import dataclass
from dotenv import load_dotenv
import os

load_dotenv()  # take environment variables from .env

DEFAULT_BASE_URL = "https://api.cloudapi.io/v1"


def env_get(key: str, default: str | None = None) -> str | None:
    """Get environment variable or return default."""
    return os.getenv(key, default)


def _env_float(key: str, default: float) -> float:
    value = env_get(key)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ValueError(f"{key} must be a number, got {value!r}") from e


def _env_int(key: str, default: int) -> int:
    value = env_get(key)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ValueError(f"{key} must be an integer, got {value!r}") from e


@dataclass(frozen=True)
class ClientConfig:
    """Connection and retry settings for ApiClient"""

    token: str
    org_id: str
    base_url: str = DEFAULT_BASE_URL
    timeout: float = 30.0  # seconds, per HTTP attempt
    max_attempts: int = 5
    base_delay: float = 0.5
    max_backoff: float = 30.0
    max_retry_after: float = 60.0
    inter_chunk_delay: float = 1.0

    def __post_init__(self):
        if not self.token:
            raise ValueError("API token is not set")
        if not self.org_id:
            raise ValueError("Organization id is not set")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    @classmethod
    def from_env(cls, **overrides) -> "ClientConfig":
        """
        Build a config from CLOUDAPI_* environment variables

        Keyword overrides win over the environment.

        Raises:
            ValueError: If the token or organization id is missing
        """
        token = overrides.pop("token", None) or env_get("CLOUDAPI_TOKEN")
        if not token:
            raise ValueError("CLOUDAPI_TOKEN environment variable is not set")

        org_id = overrides.pop("org_id", None) or env_get("CLOUDAPI_ORG_ID")
        if not org_id:
            raise ValueError("CLOUDAPI_ORG_ID environment variable is not set")

        settings = {
            "base_url": env_get("CLOUDAPI_BASE_URL", DEFAULT_BASE_URL),
            "timeout": _env_float("CLOUDAPI_TIMEOUT", 30.0),
            "max_attempts": _env_int("CLOUDAPI_MAX_ATTEMPTS", 5),
            "base_delay": _env_float("CLOUDAPI_BASE_DELAY", 0.5),
            "max_backoff": _env_float("CLOUDAPI_MAX_BACKOFF", 30.0),
            "max_retry_after": _env_float("CLOUDAPI_MAX_RETRY_AFTER", 60.0),
            "inter_chunk_delay": _env_float("CLOUDAPI_INTER_CHUNK_DELAY", 1.0),
        }
        settings.update(overrides)
        return cls(token=token, org_id=org_id, **settings)
