"""
Tests for the MCP tool surface.

Tools are invoked in-process through FastMCP, which validates arguments
against the generated input schemas the same way a remote client would.
"""

import json

import pytest
from mcp.server.fastmcp.exceptions import ToolError

from ephemeris_server import mcp_server
from ephemeris_server.config import load_config
from ephemeris_server.obs.metrics import REGISTRY
from ephemeris_server.service import TOOL_NAMES, EphemerisService

from conftest import FakePositionProvider

NOON = "2024-03-20T12:00:00Z"


@pytest.fixture
def mcp_service(monkeypatch):
    service = EphemerisService(FakePositionProvider())
    monkeypatch.setattr(mcp_server, "SERVICE", service)
    return service


async def call(name, arguments):
    """Call a tool and decode its JSON text payload."""
    result = await mcp_server.mcp.call_tool(name, arguments)
    # Newer releases return (content, structured_content)
    if isinstance(result, tuple):
        result = result[0]
    return json.loads(result[0].text)


class TestToolListing:
    """Tests for tool registration and schemas."""

    def test_server_name_from_config(self):
        assert mcp_server.mcp.name == load_config().mcp.name

    @pytest.mark.asyncio
    async def test_all_tools_registered(self):
        tools = await mcp_server.mcp.list_tools()
        assert sorted(tool.name for tool in tools) == sorted(TOOL_NAMES)

    @pytest.mark.asyncio
    async def test_descriptions(self):
        tools = {tool.name: tool for tool in await mcp_server.mcp.list_tools()}
        assert tools["get_luminaries"].description.startswith("Get positions for sun and moon only")
        assert tools["get_moon_phase"].description.startswith(
            "Calculate moon phase and illumination percentage"
        )

    @pytest.mark.asyncio
    async def test_input_schema(self):
        tools = {tool.name: tool for tool in await mcp_server.mcp.list_tools()}
        schema = tools["get_ephemeris_data"].inputSchema

        assert set(schema["required"]) == {"latitude", "longitude"}
        assert {"latitude", "longitude", "datetime", "bodies"} <= set(schema["properties"])

        compare = tools["compare_positions"].inputSchema
        assert {"date1", "date2"} <= set(compare["required"])


class TestToolCalls:
    """Tests for tool results and error reporting."""

    @pytest.mark.asyncio
    async def test_get_ephemeris_data(self, mcp_service):
        data = await call("get_ephemeris_data", {
            "latitude": 40.7, "longitude": -74.0, "datetime": NOON, "bodies": ["sun", "earth"]
        })

        assert data["datetime"] == "2024-03-20T12:00:00.000Z"
        assert data["bodies"]["sun"]["apparent_longitude"] == 10.0
        assert data["bodies"]["earth"] is None

    @pytest.mark.asyncio
    async def test_same_payload_as_service(self, mcp_service):
        data = await call("get_zodiac_sign", {
            "body": "moon", "latitude": 0, "longitude": 0, "datetime": NOON
        })
        assert data == mcp_service.get_zodiac_sign("moon", 0, 0, NOON)

    @pytest.mark.asyncio
    async def test_calculate_aspects(self, mcp_service):
        data = await call("calculate_aspects", {
            "latitude": 0, "longitude": 0, "datetime": NOON, "orb": 1, "bodies": ["sun", "venus"]
        })
        assert data["orb_used"] == 1
        assert data["aspects"][0]["exact"] is True

    @pytest.mark.asyncio
    async def test_daily_events(self, mcp_service):
        data = await call("get_daily_events", {
            "body": "sun", "latitude": 0, "longitude": 0, "datetime": NOON
        })
        assert [e["event"] for e in data["events"]] == ["rising", "culmination", "setting"]

    @pytest.mark.asyncio
    async def test_earth_position(self, mcp_service):
        data = await call("get_earth_position", {"datetime": NOON})
        assert data["earth"] is None

    @pytest.mark.asyncio
    async def test_moon_phase_defaults_to_now(self, mcp_service):
        data = await call("get_moon_phase", {})
        assert data["phase"] == "First Quarter"

    @pytest.mark.asyncio
    async def test_invalid_coordinates(self, mcp_service):
        with pytest.raises(ToolError, match="Latitude must be between -90 and 90"):
            await call("get_current_sky", {"latitude": 120, "longitude": 0})

    @pytest.mark.asyncio
    async def test_unknown_body_rejected_by_schema(self, mcp_service):
        with pytest.raises(ToolError):
            await call("get_single_body_position", {
                "body": "vulcan", "latitude": 0, "longitude": 0
            })

    @pytest.mark.asyncio
    async def test_insufficient_data(self, mcp_service):
        with pytest.raises(ToolError, match="Need at least 2 bodies"):
            await call("calculate_aspects", {
                "latitude": 0, "longitude": 0, "bodies": ["earth", "moon"]
            })

    @pytest.mark.asyncio
    async def test_unexpected_error_recorded(self, mcp_service, monkeypatch):
        """Test failures outside the error taxonomy still reach metrics and logs."""
        def broken(instant=None):
            raise RuntimeError("catalog unreadable")

        monkeypatch.setattr(mcp_service, "get_earth_position", broken)
        error_labels = {"error_code": "SERVER.ERROR", "error_category": "SERVER"}
        op_labels = {"operation": "get_earth_position", "surface": "mcp", "status": "failed"}
        errors_before = REGISTRY.get_sample_value("ephemeris_errors_total", error_labels) or 0.0
        failed_before = REGISTRY.get_sample_value("ephemeris_operations_total", op_labels) or 0.0

        with pytest.raises(ToolError, match="catalog unreadable"):
            await call("get_earth_position", {})

        assert REGISTRY.get_sample_value("ephemeris_errors_total", error_labels) == errors_before + 1
        assert REGISTRY.get_sample_value("ephemeris_operations_total", op_labels) == failed_before + 1

    @pytest.mark.asyncio
    async def test_not_configured(self, monkeypatch):
        monkeypatch.setattr(mcp_server, "SERVICE", None)
        with pytest.raises(ToolError, match="not initialized"):
            await call("get_earth_position", {})


class TestServerInfoResource:
    @pytest.mark.asyncio
    async def test_read(self, mcp_service):
        contents = list(await mcp_server.mcp.read_resource("ephemeris://server-info"))
        info = json.loads(contents[0].content)

        assert info["name"] == "ephemeris-server"
        assert len(info["tools"]) == 11
