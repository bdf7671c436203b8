"""Internal data models for meilirecord.

All models use Pydantic v2. Requests and responses are built fresh for every
call and never mutated afterwards.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Connection Configuration
# =============================================================================


class ConnectionConfig(BaseModel):
    """Where and how to reach a Meilisearch server.

    Timeouts are in seconds. None means no explicit limit is applied.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    hostname: str = Field(default="localhost", min_length=1, description="Server hostname or IP address")
    port: int = Field(default=7700, gt=0, lt=65536, description="Server port")
    api_key: str | None = Field(default=None, description="Sent as a Bearer token when set")
    use_ssl: bool = Field(default=False, description="Use https instead of http")
    connection_timeout: float | None = Field(
        default=None, ge=0, description="Timeout for establishing the connection"
    )
    data_timeout: float | None = Field(
        default=None, ge=0, description="Timeout for reading the response"
    )

    @property
    def base_url(self) -> str:
        scheme = "https" if self.use_ssl else "http"
        return f"{scheme}://{self.hostname}:{self.port}"


# =============================================================================
# Core HTTP Models
# =============================================================================


class HttpRequest(BaseModel):
    """One HTTP request as sent to the server."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    method: str = Field(description="HTTP method (GET, POST, etc.)")
    url: str = Field(description="Fully built URL including query string")
    body: str | bytes | None = Field(default=None, description="Request body, typically JSON")


class HttpResponse(BaseModel):
    """One HTTP response as received from the server.

    Header keys are lowercase. Repeated headers keep the last value. The body
    is content-decoded; wire_bytes is the size as sent by the server.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    status_code: int = Field(description="HTTP status code")
    headers: dict[str, str] = Field(default_factory=dict, description="Response headers")
    body: bytes = Field(default=b"", description="Raw response body")
    wire_bytes: int | None = Field(
        default=None, description="Bytes received before content decoding, if known"
    )
    elapsed_ms: float = Field(default=0.0, description="Response time in milliseconds")


class RequestDiagnostics(BaseModel):
    """Everything needed to log or alert on a failed request."""

    model_config = ConfigDict(extra="forbid")

    request_method: str
    request_url: str
    request_body: str | bytes | None = None
    response_code: int | None = None
    response_headers: dict[str, str] = Field(default_factory=dict)
    response_body: Any = None


# =============================================================================
# Not Found Sentinel
# =============================================================================


class _NotFound:
    """Returned instead of a body when the server answers 404.

    Falsy, so ``if not result`` reads naturally at call sites.
    """

    _instance: _NotFound | None = None

    def __new__(cls) -> _NotFound:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NOT_FOUND"

    def __reduce__(self) -> str:
        return "NOT_FOUND"


NOT_FOUND = _NotFound()
