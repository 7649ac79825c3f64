from __future__ import annotations

import base64
import json

import httpx
import pytest
from mcp.server.fastmcp.exceptions import ToolError
from mcp.shared.memory import create_connected_server_and_client_session

import scout_apm_mcp_server
import tools_apps
import tools_endpoints
import tools_insights
import tools_urls
from config import Settings
from scout_client import ScoutAPMAuthError, ScoutAPMClient, ScoutAPMError

ENDPOINT_NAME = "Controller/UsersController#show"
ENDPOINT_ID = base64.urlsafe_b64encode(ENDPOINT_NAME.encode()).decode().rstrip("=")


class FakeScoutClient:
    """Stands in for ScoutAPMClient; method results come from a dict."""

    def __init__(self, responses: dict) -> None:
        self.responses = responses
        self.calls: list[tuple] = []

    def __call__(self, settings, *args, **kwargs) -> "FakeScoutClient":
        return self

    async def __aenter__(self) -> "FakeScoutClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False

    def __getattr__(self, name):
        if name not in self.responses:
            raise AttributeError(name)

        async def method(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            value = self.responses[name]
            if isinstance(value, Exception):
                raise value
            return value

        return method


def mock_http_client(handler):
    def factory(settings):
        return ScoutAPMClient(settings, transport=httpx.MockTransport(handler))

    return factory


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_all_tools_registered():
    tools = await scout_apm_mcp_server.mcp.list_tools()
    names = {t.name for t in tools}
    assert names == {
        "list_apps",
        "get_app",
        "list_metrics",
        "get_metric",
        "list_endpoints",
        "get_endpoint",
        "get_endpoint_metrics",
        "list_endpoint_traces",
        "fetch_trace",
        "list_error_groups",
        "get_error_group",
        "get_error_group_errors",
        "get_all_insights",
        "get_insight_by_type",
        "get_insights_history",
        "get_insights_history_by_type",
        "parse_scout_url",
        "fetch_scout_url",
        "fetch_openapi_schema",
    }


# ---------------------------------------------------------------------------
# Simple pass-through tools
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_get_app_returns_json(monkeypatch):
    fake = FakeScoutClient({"get_app": {"id": 7, "name": "Web"}})
    monkeypatch.setattr("tools_apps.ScoutAPMClient", fake)

    out = await tools_apps.get_app(7)

    assert json.loads(out) == {"id": 7, "name": "Web"}
    assert fake.calls == [("get_app", (7,), {})]


@pytest.mark.asyncio
async def test_blank_optional_arguments_become_none(monkeypatch):
    fake = FakeScoutClient({"get_insights_history": {"results": {}}})
    monkeypatch.setattr("tools_insights.ScoutAPMClient", fake)

    await tools_insights.get_insights_history(3, limit=5)

    _, args, kwargs = fake.calls[0]
    assert args == (3,)
    assert kwargs["from_time"] is None
    assert kwargs["pagination_direction"] is None
    assert kwargs["limit"] == 5


@pytest.mark.asyncio
async def test_auth_failure_becomes_tool_error(monkeypatch):
    fake = FakeScoutClient({"list_apps": ScoutAPMAuthError("401")})
    monkeypatch.setattr("tools_apps.ScoutAPMClient", fake)

    with pytest.raises(ToolError, match="Authentication failed"):
        await tools_apps.list_apps()


@pytest.mark.asyncio
async def test_tool_error_over_session_keeps_serving(monkeypatch):
    fake = FakeScoutClient({"list_apps": ScoutAPMAuthError("401"), "get_app": {"id": 7}})
    monkeypatch.setattr("tools_apps.ScoutAPMClient", fake)

    server = scout_apm_mcp_server.mcp._mcp_server
    async with create_connected_server_and_client_session(server) as session:
        failed = await session.call_tool("list_apps", {})
        assert failed.isError is True
        assert "Authentication failed" in failed.content[0].text

        ok = await session.call_tool("get_app", {"app_id": 7})
        assert not ok.isError
        assert json.loads(ok.content[0].text) == {"id": 7}


@pytest.mark.asyncio
async def test_missing_api_key_becomes_tool_error(monkeypatch):
    keyless = Settings(_env_file=None, api_key=None, scout_apm_api_key=None, log_file=None)
    monkeypatch.setattr("tools_apps.settings", keyless)

    with pytest.raises(ToolError, match="API_KEY not found"):
        await tools_apps.list_apps()


@pytest.mark.asyncio
async def test_invalid_metric_reports_validation_message(monkeypatch):
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={})

    monkeypatch.setattr("tools_apps.ScoutAPMClient", mock_http_client(handler))

    with pytest.raises(ToolError, match="Invalid input: Invalid metric_type") as exc_info:
        await tools_apps.get_metric(1, "latency")

    assert "Value error" not in str(exc_info.value)
    assert requests == []


@pytest.mark.asyncio
async def test_in_band_api_error_message_reaches_caller(monkeypatch):
    def handler(request):
        return httpx.Response(
            200, json={"header": {"status": {"code": 400, "message": "Bad app"}}}
        )

    monkeypatch.setattr("tools_apps.ScoutAPMClient", mock_http_client(handler))

    with pytest.raises(ToolError, match=r"HTTP 400\): Bad app"):
        await tools_apps.list_metrics(1)


# ---------------------------------------------------------------------------
# fetch_trace
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_fetch_trace_with_endpoint(monkeypatch):
    endpoint = {"name": "UsersController#show", "link": f"/apps/1/endpoints/{ENDPOINT_ID}"}
    fake = FakeScoutClient(
        {
            "fetch_trace": {"id": 456, "metric_name": "Controller/UsersController#show"},
            "list_endpoints": [{"link": "/apps/1/endpoints/other"}, endpoint],
        }
    )
    monkeypatch.setattr("tools_endpoints.ScoutAPMClient", fake)

    out = json.loads(
        await tools_endpoints.fetch_trace(1, 456, endpoint_id=ENDPOINT_ID, include_endpoint=True)
    )

    assert out["trace"]["id"] == 456
    assert out["trace_metric_name"] == "Controller/UsersController#show"
    assert out["endpoint"] == endpoint
    assert out["decoded_endpoint"] == ENDPOINT_NAME
    assert fake.calls[1] == ("list_endpoints", (1,), {"time_range": "7days"})


@pytest.mark.asyncio
async def test_fetch_trace_endpoint_lookup_failure_is_reported(monkeypatch):
    fake = FakeScoutClient(
        {
            "fetch_trace": {"id": 456},
            "list_endpoints": ScoutAPMError("Request failed: boom"),
        }
    )
    monkeypatch.setattr("tools_endpoints.ScoutAPMClient", fake)

    out = json.loads(
        await tools_endpoints.fetch_trace(1, 456, endpoint_id=ENDPOINT_ID, include_endpoint=True)
    )

    assert out["trace"] == {"id": 456}
    assert out["endpoint_error"].startswith("Failed to fetch endpoint")
    assert "endpoint" not in out


@pytest.mark.asyncio
async def test_fetch_trace_without_endpoint_skips_lookup(monkeypatch):
    fake = FakeScoutClient({"fetch_trace": {"id": 456}})
    monkeypatch.setattr("tools_endpoints.ScoutAPMClient", fake)

    out = json.loads(await tools_endpoints.fetch_trace(1, 456))

    assert out == {"trace": {"id": 456}}
    assert [c[0] for c in fake.calls] == ["fetch_trace"]


# ---------------------------------------------------------------------------
# URL tools
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_parse_scout_url_tool():
    out = json.loads(
        await tools_urls.parse_scout_url(
            f"https://scoutapm.com/apps/123/endpoints/{ENDPOINT_ID}/trace/456"
        )
    )
    assert out["url_type"] == "trace"
    assert out["app_id"] == 123
    assert out["trace_id"] == 456
    assert out["decoded_endpoint"] == ENDPOINT_NAME


@pytest.mark.asyncio
async def test_parse_scout_url_rejects_non_urls():
    with pytest.raises(ToolError, match="full http"):
        await tools_urls.parse_scout_url("apps/123")


@pytest.mark.asyncio
async def test_fetch_scout_url_app(monkeypatch):
    fake = FakeScoutClient({"get_app": {"id": 123}})
    monkeypatch.setattr("tools_urls.ScoutAPMClient", fake)

    out = json.loads(await tools_urls.fetch_scout_url("https://scoutapm.com/apps/123"))

    assert out["url"] == "https://scoutapm.com/apps/123"
    assert out["parsed"] == {"url_type": "app", "app_id": 123}
    assert out["data"] == {"app": {"id": 123}}


@pytest.mark.asyncio
async def test_fetch_scout_url_trace(monkeypatch):
    fake = FakeScoutClient({"fetch_trace": {"id": 456, "metric_name": "Controller/X"}})
    monkeypatch.setattr("tools_urls.ScoutAPMClient", fake)

    out = json.loads(
        await tools_urls.fetch_scout_url(
            f"https://scoutapm.com/apps/123/endpoints/{ENDPOINT_ID}/trace/456"
        )
    )

    assert out["data"] == {"trace": {"id": 456, "metric_name": "Controller/X"}, "trace_metric_name": "Controller/X"}
    assert fake.calls == [("fetch_trace", (123, 456), {})]


@pytest.mark.asyncio
async def test_fetch_scout_url_endpoint(monkeypatch):
    endpoint = {"name": "show", "link": f"/apps/123/endpoints/{ENDPOINT_ID}"}
    fake = FakeScoutClient({"list_endpoints": [endpoint]})
    monkeypatch.setattr("tools_urls.ScoutAPMClient", fake)

    out = json.loads(
        await tools_urls.fetch_scout_url(f"https://scoutapm.com/apps/123/endpoints/{ENDPOINT_ID}")
    )

    assert out["data"] == {"endpoint": endpoint, "decoded_endpoint": ENDPOINT_NAME}


@pytest.mark.asyncio
async def test_fetch_scout_url_endpoint_not_found(monkeypatch):
    fake = FakeScoutClient({"list_endpoints": []})
    monkeypatch.setattr("tools_urls.ScoutAPMClient", fake)

    with pytest.raises(ToolError, match="Endpoint not found in the last 7 days"):
        await tools_urls.fetch_scout_url(f"https://scoutapm.com/apps/123/endpoints/{ENDPOINT_ID}")


@pytest.mark.asyncio
async def test_fetch_scout_url_error_group_and_insights(monkeypatch):
    fake = FakeScoutClient(
        {
            "get_error_group": {"id": 789},
            "get_insight_by_type": {"n_plus_one": {"count": 2}},
            "get_all_insights": {"slow_query": {}},
        }
    )
    monkeypatch.setattr("tools_urls.ScoutAPMClient", fake)

    group = json.loads(await tools_urls.fetch_scout_url("https://scoutapm.com/apps/1/error_groups/789"))
    typed = json.loads(await tools_urls.fetch_scout_url("https://scoutapm.com/apps/1/insights/n_plus_one"))
    every = json.loads(await tools_urls.fetch_scout_url("https://scoutapm.com/apps/1/insights"))

    assert group["data"] == {"error_group": {"id": 789}}
    assert typed["data"] == {"insight": {"n_plus_one": {"count": 2}}, "insight_type": "n_plus_one"}
    assert every["data"] == {"insights": {"slow_query": {}}}
    assert [c[0] for c in fake.calls] == ["get_error_group", "get_insight_by_type", "get_all_insights"]


@pytest.mark.asyncio
async def test_fetch_scout_url_unknown(monkeypatch):
    fake = FakeScoutClient({})
    monkeypatch.setattr("tools_urls.ScoutAPMClient", fake)

    with pytest.raises(ToolError, match="Unknown or unsupported ScoutAPM URL"):
        await tools_urls.fetch_scout_url("https://scoutapm.com/apps/1/deploys")
    with pytest.raises(ToolError, match="Unknown or unsupported ScoutAPM URL"):
        await tools_urls.fetch_scout_url("https://scoutapm.com/settings")


# ---------------------------------------------------------------------------
# fetch_openapi_schema
# ---------------------------------------------------------------------------

SCHEMA = "openapi: 3.0.1\ninfo:\n  title: ScoutAPM\npaths:\n  /apps: {}\n  /apps/{id}: {}\n"


@pytest.mark.asyncio
async def test_fetch_openapi_schema_validate_and_compare(monkeypatch, tmp_path):
    fake = FakeScoutClient(
        {"fetch_openapi_schema": {"content": SCHEMA, "content_type": "application/yaml", "status": 200}}
    )
    monkeypatch.setattr("tools_urls.ScoutAPMClient", fake)
    local = tmp_path / "schema.yaml"
    local.write_text(SCHEMA, encoding="utf-8")

    out = json.loads(
        await tools_urls.fetch_openapi_schema(
            validate_yaml=True, compare_with_local=True, local_path=str(local)
        )
    )

    assert out["fetched"] is True
    assert out["status"] == 200
    assert out["content_length"] == len(SCHEMA)
    assert out["content_preview"] == SCHEMA
    assert out["validation"] == {
        "valid_yaml": True,
        "openapi_version": "3.0.1",
        "info": {"title": "ScoutAPM"},
    }
    assert out["comparison"]["content_matches"] is True
    assert out["comparison"]["structure_matches"] is True
    assert out["comparison"]["remote_paths_count"] == 2


def test_validate_schema_reports_bad_yaml():
    report = tools_urls.validate_schema("key: [unclosed")
    assert report["valid_yaml"] is False
    assert "validation_error" in report


def test_compare_schema_missing_local_file(tmp_path):
    report = tools_urls.compare_schema(SCHEMA, tmp_path / "missing.yaml")
    assert report["local_file_exists"] is False
