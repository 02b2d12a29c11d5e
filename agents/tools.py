"""
External-tool capability for category agents.

Agents consume named tool servers (search, price feeds, sports stats) through
a small interface so the same agent code runs against real stdio servers in
production and in-process stubs in tests:

    ToolClient        -- one connection: connect / call_tool / list_tools / close
    StubToolClient    -- in-process handlers, records every call
    McpToolClient     -- launches a server over stdio via the `mcp` SDK
    ToolHub           -- an agent's set of connections, keyed by server name

The implementation is picked once, at construction, by build_tool_client().
"""
import json
import logging
from abc import ABC, abstractmethod
from contextlib import AsyncExitStack
from typing import Any, Awaitable, Callable, Optional, Union

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client

from agents.tool_servers import ToolServerConfig
from models.types import ToolResult

logger = logging.getLogger("recommender.tools")


# ─────────────────────────────────────────────────────────────────────────────
# Client interface
# ─────────────────────────────────────────────────────────────────────────────

class ToolClient(ABC):
    """A single connection to a tool server."""

    @abstractmethod
    async def connect(self) -> None:
        ...

    @abstractmethod
    async def call_tool(self, tool: str, arguments: dict) -> ToolResult:
        ...

    @abstractmethod
    async def list_tools(self) -> list[str]:
        ...

    @abstractmethod
    async def close(self) -> None:
        ...


StubHandler = Callable[[dict], Union[Any, Awaitable[Any]]]


class StubToolClient(ToolClient):
    """
    In-process tool server.

    handlers maps tool name -> callable(arguments). The return value may be a
    ToolResult, a str (wrapped as one text item), or any JSON-serializable
    object (dumped into one text item). Raising from a handler simulates a
    failing server.
    """

    def __init__(self, handlers: Optional[dict[str, StubHandler]] = None, fail_connect: bool = False):
        self.handlers = dict(handlers or {})
        self.fail_connect = fail_connect
        self.calls: list[tuple[str, dict]] = []
        self.connected = False

    async def connect(self) -> None:
        if self.fail_connect:
            raise ConnectionError("stub server refused connection")
        self.connected = True

    async def call_tool(self, tool: str, arguments: dict) -> ToolResult:
        self.calls.append((tool, dict(arguments)))
        handler = self.handlers.get(tool)
        if handler is None:
            return ToolResult(content=[{"type": "text", "text": f"Unknown tool: {tool}"}], is_error=True)
        out = handler(arguments)
        if hasattr(out, "__await__"):
            out = await out
        if isinstance(out, ToolResult):
            return out
        text = out if isinstance(out, str) else json.dumps(out)
        return ToolResult(content=[{"type": "text", "text": text}])

    async def list_tools(self) -> list[str]:
        return sorted(self.handlers)

    async def close(self) -> None:
        self.connected = False


class McpToolClient(ToolClient):
    """Tool server spoken to over stdio with the Model Context Protocol SDK."""

    def __init__(self, command: str, args: list[str], env: Optional[dict[str, str]] = None):
        self.params = StdioServerParameters(command=command, args=list(args), env=env)
        self._stack: Optional[AsyncExitStack] = None
        self._session: Optional[ClientSession] = None

    async def connect(self) -> None:
        stack = AsyncExitStack()
        try:
            read, write = await stack.enter_async_context(stdio_client(self.params))
            session = await stack.enter_async_context(ClientSession(read, write))
            await session.initialize()
        except BaseException:
            await stack.aclose()
            raise
        self._stack = stack
        self._session = session

    def _require_session(self) -> ClientSession:
        if self._session is None:
            raise RuntimeError("tool client is not connected")
        return self._session

    async def call_tool(self, tool: str, arguments: dict) -> ToolResult:
        result = await self._require_session().call_tool(tool, arguments=arguments)
        content = []
        for item in result.content:
            entry = {"type": getattr(item, "type", "text")}
            text = getattr(item, "text", None)
            if text is not None:
                entry["text"] = text
            content.append(entry)
        return ToolResult(content=content, is_error=bool(getattr(result, "isError", False)))

    async def list_tools(self) -> list[str]:
        listing = await self._require_session().list_tools()
        return [t.name for t in listing.tools]

    async def close(self) -> None:
        stack, self._stack, self._session = self._stack, None, None
        if stack is not None:
            await stack.aclose()


def build_tool_client(
    server: ToolServerConfig,
    enabled: bool,
    stub_handlers: Optional[dict[str, StubHandler]] = None,
    env: Optional[dict[str, str]] = None,
) -> ToolClient:
    """Real stdio client when tool servers are enabled, otherwise an in-process stub."""
    if enabled:
        return McpToolClient(server.command, server.args, env=env)
    return StubToolClient(stub_handlers)


# ─────────────────────────────────────────────────────────────────────────────
# Per-agent hub
# ─────────────────────────────────────────────────────────────────────────────

class ToolHub:
    """
    The named tool connections owned by one agent.

    Soft-failure contract: connect() returns False on failure, call() returns
    None for unknown names or failed calls, disconnect() logs close errors.
    None of them raise.
    """

    def __init__(self, owner: str = ""):
        self.owner = owner
        self._clients: dict[str, ToolClient] = {}

    @property
    def connected(self) -> list[str]:
        return list(self._clients)

    def is_connected(self, name: str) -> bool:
        return name in self._clients

    async def connect(self, name: str, client: ToolClient) -> bool:
        if name in self._clients:
            logger.debug("[%s] tool server %s already connected", self.owner, name)
            return True
        try:
            await client.connect()
        except Exception as e:
            logger.warning(
                "[%s] failed to connect tool server %s (%s: %s)", self.owner, name, type(e).__name__, e,
                extra={"agent": self.owner, "server": name},
            )
            return False
        self._clients[name] = client
        logger.info("[%s] connected tool server %s", self.owner, name, extra={"agent": self.owner, "server": name})
        return True

    async def call(self, name: str, tool: str, arguments: Optional[dict] = None) -> Optional[ToolResult]:
        client = self._clients.get(name)
        if client is None:
            logger.warning("[%s] tool server %s not connected", self.owner, name)
            return None
        try:
            return await client.call_tool(tool, arguments or {})
        except Exception as e:
            logger.error(
                "[%s] tool call %s:%s failed (%s: %s)", self.owner, name, tool, type(e).__name__, e,
                extra={"agent": self.owner, "server": name},
            )
            return None

    async def list_tools(self, name: Optional[str] = None) -> list[str]:
        if name is not None:
            client = self._clients.get(name)
            if client is None:
                return []
            try:
                return await client.list_tools()
            except Exception as e:
                logger.warning("[%s] list_tools on %s failed (%s: %s)", self.owner, name, type(e).__name__, e)
                return []

        tools: list[str] = []
        for server in list(self._clients):
            tools.extend(f"{server}:{t}" for t in await self.list_tools(server))
        return tools

    async def disconnect(self, name: Optional[str] = None) -> None:
        names = [name] if name is not None else list(self._clients)
        for server in names:
            client = self._clients.pop(server, None)
            if client is None:
                continue
            try:
                await client.close()
            except Exception as e:
                logger.warning(
                    "[%s] error closing tool server %s (%s: %s)", self.owner, server, type(e).__name__, e
                )
