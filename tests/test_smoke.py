import pytest
from fastmcp import Client

from _util import FakeExecutor
from certconv.engine import Engine
from certconv.server import create_server
from certconv.settings import Settings


@pytest.mark.asyncio
async def test_server_name_and_ping():
    mcp = create_server(engine=Engine(FakeExecutor()), settings=Settings())

    assert getattr(mcp, "name", "") == "certconv"

    async with Client(mcp) as client:
        result = await client.call_tool("ping", {})
        assert result.data == "pong"
        assert result.structured_content == {"result": "pong"}
        assert result.content and getattr(result.content[0], "text", None) == "pong"
