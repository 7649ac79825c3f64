"""
ScoutAPM REST API client (https://scoutapm.com/api/v0).

Design:
  - Read-only enforcement: only GET requests are issued; any attempt to
    call a mutating method raises ReadOnlyViolationError immediately
  - API key sent as the X-SCOUT-API header; never logged or returned
  - No retries: every failure surfaces immediately as a typed exception
  - ScoutAPM reports errors both via HTTP status and in-band in the JSON
    envelope (header.status.code); both are checked on every response
  - Arguments are validated (query_validator) before any request is built
  - TLS trust store: SSL_CERT_FILE when it points at a file, otherwise the
    platform default

Usage:
    async with ScoutAPMClient(settings) as client:
        apps = await client.list_apps()
        trace = await client.fetch_trace(123, 456)
"""
from __future__ import annotations

import os
import ssl
from typing import Any
from urllib.parse import quote

import httpx
import structlog

import time_helpers
from config import APP_VERSION, Settings
from credentials import get_api_key
from logging_config import register_secret
from query_validator import (
    InsightQuery,
    InsightsHistoryQuery,
    MetricQuery,
    TimeRangeQuery,
    TraceWindowQuery,
)
from time_helpers import calculate_range, format_time, parse_time

log = structlog.get_logger(__name__)

_JSON_ACCEPT = "application/json"
_YAML_ACCEPT = "application/x-yaml, application/yaml, text/yaml, */*"
_DEFAULT_ENDPOINT_RANGE = "7days"


# ---------------------------------------------------------------------------
# Typed exceptions
# ---------------------------------------------------------------------------


class ScoutAPMError(Exception):
    """Base class for all ScoutAPM client errors."""


class ReadOnlyViolationError(ScoutAPMError):
    """Raised when code attempts a non-GET request through this client."""


class ScoutAPMAuthError(ScoutAPMError):
    """Raised on HTTP 401 — the API key is missing, wrong, or revoked."""


class ScoutAPMSSLError(ScoutAPMError):
    """Raised when TLS certificate verification fails."""


class ScoutAPMAPIError(ScoutAPMError):
    """Raised for error responses from the ScoutAPM API (HTTP or in-band)."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_data: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response_data = response_data


class ScoutAPMNotFoundError(ScoutAPMAPIError):
    """Raised on HTTP 404."""

    def __init__(self, response_data: Any = None) -> None:
        super().__init__("Resource not found", status_code=404, response_data=response_data)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _segment(value: object) -> str:
    """Percent-encode one path segment (endpoint IDs may contain / or =)."""
    return quote(str(value), safe="")


def _embedded_status(data: Any) -> tuple[int | None, str | None]:
    """Return (code, message) from a {"header": {"status": {...}}} envelope."""
    if not isinstance(data, dict):
        return None, None
    header = data.get("header")
    status = header.get("status") if isinstance(header, dict) else None
    if not isinstance(status, dict):
        return None, None
    try:
        code = int(status["code"]) if status.get("code") is not None else None
    except (TypeError, ValueError):
        code = None
    return code, status.get("message")


def _is_ssl_failure(exc: BaseException) -> bool:
    """True if exc (or anything in its cause chain) is a TLS verification failure."""
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        if isinstance(current, ssl.SSLError):
            return True
        if "CERTIFICATE_VERIFY_FAILED" in str(current):
            return True
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return False


def build_ssl_context(cert_file: str | None) -> ssl.SSLContext:
    """SSL context trusting cert_file if it exists, else the system defaults."""
    if cert_file and os.path.isfile(cert_file):
        log.debug("scout.tls.custom_ca", cert_file=cert_file)
        return ssl.create_default_context(cafile=cert_file)
    return ssl.create_default_context()


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class ScoutAPMClient:
    """
    Async, read-only HTTP client for the ScoutAPM v0 API.

    Intended to be used as an async context manager so the underlying
    httpx.AsyncClient is properly opened and closed:

        async with ScoutAPMClient(settings) as client:
            data = await client.get_app(123)

    The API key is resolved once, at construction. A custom httpx transport
    can be injected (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        settings: Settings,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._s = settings
        self._api_key = get_api_key(settings, api_key)
        register_secret(self._api_key)
        self._api_base = settings.scout_api_base
        self._user_agent = f"scout-apm-mcp-py/{APP_VERSION}"
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    @property
    def api_base(self) -> str:
        return self._api_base

    @property
    def user_agent(self) -> str:
        return self._user_agent

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    async def __aenter__(self) -> "ScoutAPMClient":
        self._http = httpx.AsyncClient(
            timeout=httpx.Timeout(
                connect=self._s.http_connect_timeout,
                read=self._s.http_read_timeout,
                write=10.0,
                pool=10.0,
            ),
            verify=build_ssl_context(self._s.ssl_cert_file),
            transport=self._transport,
            follow_redirects=False,
            headers={
                "X-SCOUT-API": self._api_key,
                "User-Agent": self._user_agent,
            },
        )
        return self

    async def __aexit__(self, *_: object) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    # ------------------------------------------------------------------
    # Applications
    # ------------------------------------------------------------------

    async def list_apps(self, active_since: str | None = None) -> list[dict[str, Any]]:
        """
        List applications visible to this API key.

        Args:
            active_since: Optional ISO 8601 time; only apps whose
                          last_reported_at is at or after it are returned.
        """
        cutoff = parse_time(active_since) if active_since else None
        data = await self.get("/apps")
        apps = (data.get("results") or {}).get("apps") or []

        if cutoff is None:
            return apps

        active = []
        for app in apps:
            reported_at = app.get("last_reported_at")
            if not reported_at:
                continue
            try:
                if parse_time(reported_at) >= cutoff:
                    active.append(app)
            except ValueError:
                log.warning("scout.apps.bad_timestamp", app_id=app.get("id"))
        return active

    async def get_app(self, app_id: int) -> dict[str, Any]:
        data = await self.get(f"/apps/{_segment(app_id)}")
        return (data.get("results") or {}).get("app") or {}

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    async def list_metrics(self, app_id: int) -> list[str]:
        data = await self.get(f"/apps/{_segment(app_id)}/metrics")
        return (data.get("results") or {}).get("availableMetrics") or []

    async def get_metric(
        self,
        app_id: int,
        metric_type: str,
        from_time: str | None = None,
        to_time: str | None = None,
        time_range: str | None = None,
    ) -> dict[str, Any]:
        """
        Time series for one metric type, e.g. {"response_time": [[ts, value], ...]}.

        time_range ("3hrs", "1day", ...) overrides from_time and ends at
        to_time, or now.
        """
        from_time, to_time = _resolve_window(from_time, to_time, time_range)
        query = MetricQuery(metric_type=metric_type, from_time=from_time, to_time=to_time)
        data = await self.get(
            f"/apps/{_segment(app_id)}/metrics/{_segment(query.metric_type)}",
            params={"from": query.from_time, "to": query.to_time},
        )
        return (data.get("results") or {}).get("series") or {}

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    async def list_endpoints(
        self,
        app_id: int,
        from_time: str | None = None,
        to_time: str | None = None,
        time_range: str | None = None,
    ) -> list[dict[str, Any]]:
        """
        List endpoints for an application.

        The API needs a timeframe: with no range and no bounds this asks for
        the last 7 days, and a lone from_time runs until now.
        """
        if not time_range and not from_time and not to_time:
            time_range = _DEFAULT_ENDPOINT_RANGE
        from_time, to_time = _resolve_window(from_time, to_time, time_range)
        if from_time and not to_time:
            to_time = format_time(time_helpers.utcnow())

        query = TimeRangeQuery(from_time=from_time, to_time=to_time)
        data = await self.get(
            f"/apps/{_segment(app_id)}/endpoints",
            params={"from": query.from_time, "to": query.to_time},
        )
        return data.get("results") or []

    async def get_endpoint(self, app_id: int, endpoint_id: str) -> dict[str, Any]:
        data = await self.get(f"/apps/{_segment(app_id)}/endpoints/{_segment(endpoint_id)}")
        results = data.get("results") or {}
        if isinstance(results, dict) and "endpoint" in results:
            return results["endpoint"] or {}
        return results

    async def get_endpoint_metrics(
        self,
        app_id: int,
        endpoint_id: str,
        metric_type: str,
        from_time: str | None = None,
        to_time: str | None = None,
        time_range: str | None = None,
    ) -> list[Any]:
        """Data points for one metric type on one endpoint."""
        from_time, to_time = _resolve_window(from_time, to_time, time_range)
        query = MetricQuery(metric_type=metric_type, from_time=from_time, to_time=to_time)
        data = await self.get(
            f"/apps/{_segment(app_id)}/endpoints/{_segment(endpoint_id)}"
            f"/metrics/{_segment(query.metric_type)}",
            params={"from": query.from_time, "to": query.to_time},
        )
        series = (data.get("results") or {}).get("series") or {}
        return series.get(query.metric_type) or []

    async def list_endpoint_traces(
        self,
        app_id: int,
        endpoint_id: str,
        from_time: str | None = None,
        to_time: str | None = None,
        time_range: str | None = None,
    ) -> list[dict[str, Any]]:
        """Up to 100 traces for an endpoint; from_time must be within 7 days."""
        now = time_helpers.utcnow()
        if time_range and not to_time:
            to_time = format_time(now)
        from_time, to_time = _resolve_window(from_time, to_time, time_range)
        query = TraceWindowQuery.model_validate(
            {"from_time": from_time, "to_time": to_time},
            context={"now": now},
        )
        data = await self.get(
            f"/apps/{_segment(app_id)}/endpoints/{_segment(endpoint_id)}/traces",
            params={"from": query.from_time, "to": query.to_time},
        )
        return (data.get("results") or {}).get("traces") or []

    # ------------------------------------------------------------------
    # Traces
    # ------------------------------------------------------------------

    async def fetch_trace(self, app_id: int, trace_id: int) -> dict[str, Any]:
        data = await self.get(f"/apps/{_segment(app_id)}/traces/{_segment(trace_id)}")
        return (data.get("results") or {}).get("trace") or {}

    # ------------------------------------------------------------------
    # Errors
    # ------------------------------------------------------------------

    async def list_error_groups(
        self,
        app_id: int,
        from_time: str | None = None,
        to_time: str | None = None,
        endpoint: str | None = None,
    ) -> list[dict[str, Any]]:
        """Up to 100 error groups within the last 30 days, optionally per endpoint."""
        query = TimeRangeQuery(from_time=from_time, to_time=to_time)
        data = await self.get(
            f"/apps/{_segment(app_id)}/error_groups",
            params={"from": query.from_time, "to": query.to_time, "endpoint": endpoint or None},
        )
        return (data.get("results") or {}).get("error_groups") or []

    async def get_error_group(self, app_id: int, error_id: int) -> dict[str, Any]:
        data = await self.get(f"/apps/{_segment(app_id)}/error_groups/{_segment(error_id)}")
        return (data.get("results") or {}).get("error_group") or {}

    async def get_error_group_errors(self, app_id: int, error_id: int) -> list[dict[str, Any]]:
        data = await self.get(
            f"/apps/{_segment(app_id)}/error_groups/{_segment(error_id)}/errors"
        )
        return (data.get("results") or {}).get("errors") or []

    # ------------------------------------------------------------------
    # Insights
    # ------------------------------------------------------------------

    async def get_all_insights(self, app_id: int, limit: int | None = None) -> dict[str, Any]:
        """All insight categories (n_plus_one, memory_bloat, slow_query) at once."""
        if limit is not None and limit < 1:
            raise ValueError("limit must be a positive integer")
        data = await self.get(f"/apps/{_segment(app_id)}/insights", params={"limit": limit})
        return data.get("results") or {}

    async def get_insight_by_type(
        self,
        app_id: int,
        insight_type: str,
        limit: int | None = None,
    ) -> dict[str, Any]:
        query = InsightQuery(insight_type=insight_type, limit=limit)
        data = await self.get(
            f"/apps/{_segment(app_id)}/insights/{_segment(query.insight_type)}",
            params={"limit": query.limit},
        )
        return data.get("results") or {}

    async def get_insights_history(
        self,
        app_id: int,
        from_time: str | None = None,
        to_time: str | None = None,
        limit: int | None = None,
        pagination_cursor: int | None = None,
        pagination_direction: str | None = None,
        pagination_page: int | None = None,
    ) -> dict[str, Any]:
        """Historical insights, cursor-paginated. Returns the full response body."""
        query = InsightsHistoryQuery(
            from_time=from_time,
            to_time=to_time,
            limit=limit,
            pagination_cursor=pagination_cursor,
            pagination_direction=pagination_direction,
            pagination_page=pagination_page,
        )
        return await self.get(
            f"/apps/{_segment(app_id)}/insights/history",
            params=_history_params(query),
        )

    async def get_insights_history_by_type(
        self,
        app_id: int,
        insight_type: str,
        from_time: str | None = None,
        to_time: str | None = None,
        limit: int | None = None,
        pagination_cursor: int | None = None,
        pagination_direction: str | None = None,
        pagination_page: int | None = None,
    ) -> dict[str, Any]:
        """Historical insights for one insight type. Returns the full response body."""
        insight = InsightQuery(insight_type=insight_type)
        query = InsightsHistoryQuery(
            from_time=from_time,
            to_time=to_time,
            limit=limit,
            pagination_cursor=pagination_cursor,
            pagination_direction=pagination_direction,
            pagination_page=pagination_page,
        )
        return await self.get(
            f"/apps/{_segment(app_id)}/insights/history/{_segment(insight.insight_type)}",
            params=_history_params(query),
        )

    # ------------------------------------------------------------------
    # OpenAPI schema
    # ------------------------------------------------------------------

    async def fetch_openapi_schema(self) -> dict[str, Any]:
        """
        Download the API's OpenAPI document.

        Returns {"content": str, "content_type": str | None, "status": int}.
        The body is YAML, so only the HTTP status is checked.
        """
        response = await self._request("GET", "/openapi.yaml", accept=_YAML_ACCEPT)
        status = response.status_code

        if 200 <= status < 300:
            return {
                "content": response.text,
                "content_type": response.headers.get("content-type"),
                "status": status,
            }
        if status == 401:
            log.error("scout.response.unauthorized", path="/openapi.yaml")
            raise ScoutAPMAuthError("Authentication failed. Check your API key.")

        log.error("scout.response.error", path="/openapi.yaml", status_code=status)
        raise ScoutAPMAPIError(
            f"API request failed: {status} {response.reason_phrase}".rstrip(),
            status_code=status,
        )

    # ------------------------------------------------------------------
    # Request execution
    # ------------------------------------------------------------------

    async def get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Perform an authenticated GET against {api_base}{path} and return the JSON body.

        None-valued params are dropped from the query string.

        Raises:
            ScoutAPMAuthError:     HTTP 401.
            ScoutAPMNotFoundError: HTTP 404.
            ScoutAPMAPIError:      Other non-2xx, non-JSON body, or an in-band
                                   header.status.code >= 400.
            ScoutAPMSSLError:      TLS verification failed.
            ScoutAPMError:         Any other transport failure.
        """
        if not path.startswith("/"):
            path = f"/{path}"
        response = await self._request("GET", path, params=params, accept=_JSON_ACCEPT)
        return self._handle_response(response)

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        accept: str = _JSON_ACCEPT,
    ) -> httpx.Response:
        """Send one request. No retries; transport failures become typed errors."""
        if method != "GET":
            raise ReadOnlyViolationError(
                f"This client is read-only. Refusing to issue {method} request."
            )

        assert self._http is not None, "Client must be used as an async context manager"

        query = {k: v for k, v in (params or {}).items() if v is not None}
        url = f"{self._api_base}{path}"
        log.debug("scout.request", path=path, params=query)

        try:
            return await self._http.request(
                method,
                url,
                params=query or None,
                headers={"Accept": accept},
            )
        except httpx.TimeoutException as exc:
            log.error("scout.request.timeout", path=path)
            raise ScoutAPMError(
                f"Request failed: ScoutAPM did not respond in time ({type(exc).__name__})"
            ) from exc
        except httpx.RequestError as exc:
            if _is_ssl_failure(exc):
                log.error("scout.request.ssl_error", path=path)
                raise ScoutAPMSSLError(
                    f"SSL verification failed: {exc}. This may be due to system "
                    "certificate configuration issues; set SSL_CERT_FILE to a CA bundle."
                ) from exc
            log.error("scout.request.network_error", path=path, error_type=type(exc).__name__)
            raise ScoutAPMError(f"Request failed: {type(exc).__name__} - {exc}") from exc

    def _handle_response(self, response: httpx.Response) -> dict[str, Any]:
        """Map HTTP status and in-band envelope errors to exceptions; return the body."""
        status = response.status_code
        path = response.request.url.path

        if status == 401:
            log.error("scout.response.unauthorized", path=path)
            raise ScoutAPMAuthError("Authentication failed - check your API key")

        try:
            data = response.json()
        except ValueError:
            if status == 404:
                raise ScoutAPMNotFoundError()
            log.error("scout.response.invalid_json", path=path, status_code=status)
            raise ScoutAPMAPIError(
                f"Invalid JSON response (HTTP {status})", status_code=status
            )

        if status == 404:
            log.warning("scout.response.not_found", path=path)
            raise ScoutAPMNotFoundError(response_data=data)

        if not 200 <= status < 300:
            _, message = _embedded_status(data)
            log.error("scout.response.error", path=path, status_code=status)
            raise ScoutAPMAPIError(
                message or "API request failed", status_code=status, response_data=data
            )

        code, message = _embedded_status(data)
        if code is not None and code >= 400:
            log.error("scout.response.embedded_error", path=path, status_code=code)
            raise ScoutAPMAPIError(
                message or "Unknown API error", status_code=code, response_data=data
            )

        if not isinstance(data, dict):
            return {"results": data}
        return data


def _resolve_window(
    from_time: str | None,
    to_time: str | None,
    time_range: str | None,
) -> tuple[str | None, str | None]:
    """Apply a quick range on top of explicit bounds. The range wins over from_time."""
    if not time_range:
        return from_time, to_time
    window = calculate_range(time_range, to_time)
    return window["from"], window["to"]


def _history_params(query: InsightsHistoryQuery) -> dict[str, Any]:
    return {
        "from": query.from_time,
        "to": query.to_time,
        "limit": query.limit,
        "pagination_cursor": query.pagination_cursor,
        "pagination_direction": query.pagination_direction,
        "pagination_page": query.pagination_page,
    }
