"""Connection - Sends requests to a Meilisearch server and decodes responses.

The Connection owns a single reusable httpx.Client, opened lazily on first
use. Every request is built from an immutable HttpRequest plus per-request
headers and timeouts, so nothing on the shared client changes between calls.

Response classification:
    2xx HEAD                      -> True
    2xx application/json          -> decoded JSON (raw bytes if raw=True)
    2xx text/plain                -> list of non-empty lines (raw bytes if raw=True)
    2xx anything else             -> UnsupportedContentType
    404                           -> NOT_FOUND
    anything else                 -> RequestFailed
"""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING, Any, Sequence
from urllib.parse import quote, urlencode

import httpx

from meilirecord.models import (
    NOT_FOUND,
    ConnectionConfig,
    HttpRequest,
    HttpResponse,
    RequestDiagnostics,
)

if TYPE_CHECKING:
    from meilirecord.indexes_command import IndexesCommand

logger = logging.getLogger(__name__)

USER_AGENT = "meilirecord (httpx)"

PathLike = str | Sequence[Any]


class MeilisearchError(Exception):
    """Base class for errors raised by Meilisearch operations."""

    def __init__(self, message: str, diagnostics: RequestDiagnostics | None = None) -> None:
        super().__init__(message)
        self.diagnostics = diagnostics


class TransportFailure(MeilisearchError):
    """Raised when the request could not be sent (connection error, timeout, etc.)."""


class IncompleteResponse(MeilisearchError):
    """Raised when fewer bytes arrive than the content-length header declares."""


class UnsupportedContentType(MeilisearchError):
    """Raised when a 2xx response carries a body this client cannot decode."""


class RequestFailed(MeilisearchError):
    """Raised for any status other than 2xx or 404."""

    @property
    def status_code(self) -> int | None:
        return self.diagnostics.response_code if self.diagnostics else None


def _encode_segment(segment: Any) -> str:
    """Percent-encode one path segment. Lists become comma-joined values."""
    if isinstance(segment, (list, tuple)):
        segment = ",".join(str(s) for s in segment)
    return quote(str(segment), safe="")


def _query_value(value: Any) -> Any:
    # urlencode would render True as "True"; the server expects lowercase
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


def decode_error_body(body: bytes) -> Any:
    """Decode a response body for diagnostics: JSON if possible, else text."""
    try:
        return json.loads(body)
    except ValueError:
        return body.decode("utf-8", errors="replace")


class Connection:
    """Synchronous HTTP transport for one Meilisearch server.

    Not safe for concurrent use across threads: use one Connection per thread.

    Usage:
        connection = Connection(ConnectionConfig(hostname="localhost", port=7700))
        try:
            info = connection.get(["indexes", "movies"])
        finally:
            connection.close()

    Or with context manager:
        with Connection(config) as connection:
            movies = connection.create_command("movies")
            movies.search({"q": "batman"})
    """

    driver_name = "meilisearch"

    def __init__(
        self,
        config: ConnectionConfig | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the connection without opening it.

        Args:
            config: Server location and credentials. Defaults to localhost:7700.
            transport: Optional httpx transport, e.g. httpx.MockTransport in tests.
        """
        self.config = config or ConnectionConfig()
        self._transport = transport
        self._client: httpx.Client | None = None

    def __enter__(self) -> "Connection":
        self.open()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self.close()

    def __getstate__(self) -> dict[str, Any]:
        # The client handle cannot travel; reopen lazily on the other side.
        state = self.__dict__.copy()
        state["_client"] = None
        return state

    @property
    def base_url(self) -> str:
        return self.config.base_url

    @property
    def is_active(self) -> bool:
        return self._client is not None

    def open(self) -> httpx.Client:
        """Establish the client handle and return it. Reuses an open handle."""
        if self._client is None:
            self._client = httpx.Client(transport=self._transport)
        return self._client

    def close(self) -> None:
        """Release the client handle. Does nothing if already closed."""
        if self._client is None:
            return
        logger.debug("Closing connection to Meilisearch. Base url was: %s", self.base_url)
        try:
            self._client.close()
        finally:
            self._client = None

    def create_command(self, index_uid: str) -> IndexesCommand:
        """Create an index-scoped command bound to this connection."""
        from meilirecord.indexes_command import IndexesCommand

        self.open()
        return IndexesCommand(self, index_uid)

    # -------------------------------------------------------------------------
    # Verbs
    # -------------------------------------------------------------------------

    def get(
        self,
        url: PathLike,
        options: dict[str, Any] | None = None,
        body: str | bytes | None = None,
        raw: bool = False,
    ) -> Any:
        return self.execute("GET", self.create_url(url, options), body, raw)

    def head(
        self,
        url: PathLike,
        options: dict[str, Any] | None = None,
        body: str | bytes | None = None,
    ) -> Any:
        return self.execute("HEAD", self.create_url(url, options), body)

    def post(
        self,
        url: PathLike,
        options: dict[str, Any] | None = None,
        body: str | bytes | None = None,
        raw: bool = False,
    ) -> Any:
        return self.execute("POST", self.create_url(url, options), body, raw)

    def put(
        self,
        url: PathLike,
        options: dict[str, Any] | None = None,
        body: str | bytes | None = None,
        raw: bool = False,
    ) -> Any:
        return self.execute("PUT", self.create_url(url, options), body, raw)

    def delete(
        self,
        url: PathLike,
        options: dict[str, Any] | None = None,
        body: str | bytes | None = None,
        raw: bool = False,
    ) -> Any:
        return self.execute("DELETE", self.create_url(url, options), body, raw)

    def patch(
        self,
        url: PathLike,
        options: dict[str, Any] | None = None,
        body: str | bytes | None = None,
        raw: bool = False,
    ) -> Any:
        return self.execute("PATCH", self.create_url(url, options), body, raw)

    # -------------------------------------------------------------------------
    # Request building
    # -------------------------------------------------------------------------

    def create_url(self, path: PathLike, options: dict[str, Any] | None = None) -> str:
        """Join the base URL with a literal path or a sequence of segments.

        Segments are percent-encoded one at a time, so a segment containing
        "/" or a space stays a single segment.
        """
        query = ""
        if options:
            query = urlencode({k: _query_value(v) for k, v in options.items()})

        if isinstance(path, str):
            url = path.lstrip("/")
            if query:
                url += ("&" if "?" in url else "?") + query
        else:
            url = "/".join(_encode_segment(segment) for segment in path)
            if query:
                url += "?" + query

        return f"{self.base_url}/{url}"

    def _request_headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    def _request_timeout(self) -> httpx.Timeout:
        return httpx.Timeout(
            None,
            connect=self.config.connection_timeout,
            read=self.config.data_timeout,
        )

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def execute(
        self,
        method: str,
        url: str,
        body: str | bytes | None = None,
        raw: bool = False,
    ) -> Any:
        """Send one request and decode the response.

        Args:
            method: HTTP method name (case-insensitive).
            url: Fully built URL.
            body: Request body, typically a JSON string.
            raw: Return the undecoded body bytes for JSON and text responses.

        Returns:
            Decoded JSON, a list of text lines, raw bytes, True for HEAD, or
            NOT_FOUND for a 404.

        Raises:
            TransportFailure: If the request could not be sent.
            IncompleteResponse: If the body is shorter than content-length.
            UnsupportedContentType: If a 2xx body cannot be decoded.
            RequestFailed: For any other non-2xx status.
        """
        request = HttpRequest(method=method.upper(), url=url, body=body)
        response = self._send(request)
        return self._decode(request, response, raw)

    def _send(self, request: HttpRequest) -> HttpResponse:
        client = self.open()

        logger.debug("Sending request to Meilisearch server: %s %s\n%s", request.method, request.url, request.body)

        try:
            start_time = time.perf_counter()
            http_response = client.request(
                method=request.method,
                url=request.url,
                content=request.body,
                headers=self._request_headers(),
                timeout=self._request_timeout(),
            )
            elapsed_ms = (time.perf_counter() - start_time) * 1000
        except httpx.TimeoutException as e:
            raise TransportFailure(
                f"Meilisearch request timed out: {e}", self._diagnostics(request)
            ) from e
        except httpx.ConnectError as e:
            raise TransportFailure(
                f"Meilisearch connection error: {e}", self._diagnostics(request)
            ) from e
        except httpx.HTTPError as e:
            raise TransportFailure(
                f"Meilisearch request failed: {e}", self._diagnostics(request)
            ) from e

        logger.debug(
            "Meilisearch responded %d to %s %s in %.1f ms",
            http_response.status_code,
            request.method,
            request.url,
            elapsed_ms,
        )
        return self._convert_response(http_response, elapsed_ms)

    def _convert_response(self, response: httpx.Response, elapsed_ms: float) -> HttpResponse:
        headers: dict[str, str] = {}
        for key, value in response.headers.multi_items():
            headers[key.lower()] = value.strip()

        return HttpResponse(
            status_code=response.status_code,
            headers=headers,
            body=response.content,
            wire_bytes=response.num_bytes_downloaded,
            elapsed_ms=elapsed_ms,
        )

    def _decode(self, request: HttpRequest, response: HttpResponse, raw: bool) -> Any:
        code = response.status_code

        if code == 404:
            return NOT_FOUND

        if not 200 <= code < 300:
            raise RequestFailed(
                f"Meilisearch request failed with code {code}. Response body:\n"
                f"{response.body.decode('utf-8', errors='replace')}",
                self._diagnostics(request, response),
            )

        if request.method == "HEAD":
            return True

        declared = response.headers.get("content-length")
        # content-length counts encoded bytes, body holds decoded bytes
        received = response.wire_bytes if response.wire_bytes is not None else len(response.body)
        if declared is not None and declared.isdigit() and received < int(declared):
            raise IncompleteResponse(
                f"Incomplete data received from Meilisearch: {received} < {declared}",
                self._diagnostics(request, response, decode_body=False),
            )

        content_type = response.headers.get("content-type", "")
        if content_type.startswith("application/json"):
            if raw:
                return response.body
            try:
                return json.loads(response.body)
            except ValueError as e:
                raise UnsupportedContentType(
                    f"Malformed JSON received from Meilisearch: {e}",
                    self._diagnostics(request, response, decode_body=False),
                ) from e
        if content_type.startswith("text/plain"):
            if raw:
                return response.body
            text = response.body.decode("utf-8", errors="replace")
            return [line for line in text.split("\n") if line]

        raise UnsupportedContentType(
            f"Unsupported data received from Meilisearch: {content_type or '(no content-type)'}",
            self._diagnostics(request, response),
        )

    def _diagnostics(
        self,
        request: HttpRequest,
        response: HttpResponse | None = None,
        decode_body: bool = True,
    ) -> RequestDiagnostics:
        if response is None:
            return RequestDiagnostics(
                request_method=request.method,
                request_url=request.url,
                request_body=request.body,
            )

        if decode_body:
            response_body = decode_error_body(response.body)
        else:
            response_body = response.body.decode("utf-8", errors="replace")

        return RequestDiagnostics(
            request_method=request.method,
            request_url=request.url,
            request_body=request.body,
            response_code=response.status_code,
            response_headers=response.headers,
            response_body=response_body,
        )
