"""
Quix - MCP (Model Context Protocol) Bridge.

Represents out-of-process tool servers as local tools:
  - Connect over stdio (spawned process) or streamable HTTP with bearer auth
  - Enumerate remote tools with normalized parameter schemas
  - Inject workspace-level parameter defaults
  - Invoke remote tools, always returning text (errors included)
  - Pool sessions per provider across orchestration runs
  - YAML ``mcp:`` block configuration for declarative server connections
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Generator, Optional

import httpx
import yaml
from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client
from mcp.client.streamable_http import streamablehttp_client
from pydantic import ValidationError

from .exceptions import BridgeInitializationError, BridgeNotConnectedError, ToolArgumentsError
from .models import SideEffect, ToolCategory, ToolDescriptor
from .redact import sanitize_for_log, strip_secrets
from .schema import ArgumentValidator, apply_defaults, normalize_schema
from .tools import Tool

logger = logging.getLogger("quix.mcp")

STDIO = "stdio"
HTTP = "http"

NO_CONTENT_MESSAGE = "Tool returned no content"
NO_TEXT_CONTENT_MESSAGE = "No text content available in response"

DEFAULT_INTEGRATION_SERVERS = {
    "slack": "@modelcontextprotocol/server-slack",
    "notion": "@suekou/mcp-notion-server",
    "linear": "@ibraheem4/linear-mcp",
}


@dataclass
class MCPServerConfig:
    """Configuration for connecting to an external MCP server."""

    name: str
    transport: str = STDIO
    command: str = ""
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    url: str = ""
    auth_token: Optional[str] = None
    timeout: float = 30
    allowed_tools: Optional[list[str]] = None
    selection_prompt: str = ""
    default_instructions: Optional[str] = None
    tool_defaults: dict[str, Any] = field(default_factory=dict)
    audit: bool = True

    def __post_init__(self) -> None:
        if self.transport not in (STDIO, HTTP):
            raise ValueError(f"Unknown transport '{self.transport}' for MCP server '{self.name}'")
        if self.transport == STDIO and not self.command:
            raise ValueError(f"MCP server '{self.name}' uses stdio but has no command")
        if self.transport == HTTP and not self.url:
            raise ValueError(f"MCP server '{self.name}' uses http but has no url")

    def resolved_env(self) -> dict[str, str]:
        """Environment for the child process.

        Values written as ``${VAR}`` are read from the host environment and
        ``PATH`` is inherited unless set explicitly.
        """
        env = {
            k: os.environ.get(v.strip("${}"), v) if v.startswith("${") else v
            for k, v in self.env.items()
        }
        if not env.get("PATH"):
            env["PATH"] = os.environ.get("PATH", "")
        return env

    def server_parameters(self) -> StdioServerParameters:
        return StdioServerParameters(
            command=self.command,
            args=list(self.args),
            env=self.resolved_env(),
        )


class BearerAuth(httpx.Auth):
    """Adds ``Authorization: Bearer <token>`` to every request."""

    def __init__(self, token: str) -> None:
        self._token = token

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        request.headers["Authorization"] = f"Bearer {self._token}"
        yield request


def _side_effect(remote_tool: Any) -> SideEffect:
    annotations = getattr(remote_tool, "annotations", None)
    if annotations is None:
        return SideEffect.UPDATE
    if getattr(annotations, "readOnlyHint", None):
        return SideEffect.READ
    if getattr(annotations, "destructiveHint", None):
        return SideEffect.DELETE
    return SideEffect.UPDATE


def result_to_text(result: Any) -> str:
    """Map a remote call result onto the text handed back to the model.

    Content blocks yield their ``text`` blocks joined by blank lines; a
    legacy ``toolResult`` value is JSON-stringified; anything else is the
    no-content message.
    """
    content = getattr(result, "content", None) if result is not None else None
    if isinstance(content, list) and content:
        text = "\n\n".join(
            getattr(block, "text", "")
            for block in content
            if getattr(block, "type", None) == "text"
        )
        if getattr(result, "isError", False) and text:
            return f"Tool reported an error: {text}"
        return text or NO_TEXT_CONTENT_MESSAGE

    legacy = getattr(result, "toolResult", None)
    if legacy is None and result is not None:
        legacy = (getattr(result, "model_extra", None) or {}).get("toolResult")
    if legacy is not None:
        return json.dumps(legacy, default=str) if not isinstance(legacy, str) else legacy

    return NO_CONTENT_MESSAGE


class MCPSession:
    """One connected tool server.

    The transport lives in a dedicated owner task: the underlying
    stdio/HTTP clients must be entered and exited from the same task, and a
    pooled session is used from many.
    """

    def __init__(self, config: MCPServerConfig) -> None:
        self._config = config
        self._session: Any = None
        self._runner: Optional[asyncio.Task] = None
        self._closing: Optional[asyncio.Event] = None
        self._ready: Optional[asyncio.Future] = None
        self._descriptors: list[ToolDescriptor] = []
        self._tools: Optional[list[BridgeTool]] = None
        # Spawned-process pipes are single-writer; HTTP multiplexes requests.
        self._call_lock: Optional[asyncio.Lock] = (
            asyncio.Lock() if config.transport == STDIO else None
        )

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def config(self) -> MCPServerConfig:
        return self._config

    @property
    def connected(self) -> bool:
        """Whether the session is currently connected to the MCP server."""
        return self._session is not None

    async def connect(self) -> None:
        """Open the transport and perform the protocol handshake.

        Raises:
            BridgeInitializationError: If the server cannot be reached or
                initialized. Any partially opened transport is closed first.
        """
        if self._runner is not None:
            if not self._runner.done():
                return
            # Owner task ended with the transport; start over.
            await self._stop(cancel=False)
        loop = asyncio.get_running_loop()
        self._ready = loop.create_future()
        self._closing = asyncio.Event()
        logger.info("Connecting to MCP server '%s' over %s", self.name, self._config.transport)
        self._runner = asyncio.create_task(self._own_transport(), name=f"mcp:{self.name}")
        try:
            await asyncio.wait_for(asyncio.shield(self._ready), timeout=self._config.timeout)
        except BaseException as e:
            await self._stop(cancel=True)
            if isinstance(e, asyncio.CancelledError):
                raise
            message = str(e) or type(e).__name__
            if isinstance(e, asyncio.TimeoutError):
                message = f"timed out after {self._config.timeout}s"
            logger.error(
                "Failed to initialize MCP server '%s': %s", self.name, strip_secrets(message)
            )
            raise BridgeInitializationError(
                self.name, f"Failed to initialize MCP server '{self.name}': {message}", cause=e
            ) from e
        logger.info("MCP server '%s': connected", self.name)

    async def _own_transport(self) -> None:
        try:
            async with AsyncExitStack() as stack:
                if self._config.transport == STDIO:
                    read, write = await stack.enter_async_context(
                        stdio_client(self._config.server_parameters())
                    )
                else:
                    auth = BearerAuth(self._config.auth_token) if self._config.auth_token else None
                    read, write, _ = await stack.enter_async_context(
                        streamablehttp_client(
                            self._config.url,
                            timeout=timedelta(seconds=self._config.timeout),
                            auth=auth,
                        )
                    )
                session = await stack.enter_async_context(ClientSession(read, write))
                await session.initialize()
                self._session = session
                self._ready.set_result(None)
                await self._closing.wait()
        except Exception as e:
            if not self._ready.done():
                self._ready.set_exception(e)
            else:
                logger.warning(
                    "MCP server '%s': transport closed with error: %s",
                    self.name,
                    strip_secrets(str(e)),
                )
        finally:
            self._session = None

    async def list_tools(self) -> list[ToolDescriptor]:
        """Enumerate remote tools, applying the allowlist and schema fixes."""
        if not self.connected:
            raise BridgeNotConnectedError(self.name)
        response = await self._session.list_tools()
        descriptors: list[ToolDescriptor] = []
        for remote in response.tools:
            allowed = self._config.allowed_tools
            if allowed is not None and remote.name not in allowed:
                continue
            schema = normalize_schema(
                getattr(remote, "inputSchema", None) or {"type": "object", "properties": {}}
            )
            schema = apply_defaults(schema, self._config.tool_defaults)
            descriptors.append(
                ToolDescriptor(
                    name=remote.name,
                    description=getattr(remote, "description", None) or "",
                    parameter_schema=schema,
                    side_effect=_side_effect(remote),
                )
            )
        self._descriptors = descriptors
        self._tools = None
        logger.info("MCP server '%s': %d tool(s) available", self.name, len(descriptors))
        for d in descriptors:
            logger.debug("- %s", d.name)
        return list(descriptors)

    def tools(self) -> list[BridgeTool]:
        """Local tool wrappers for the most recently listed descriptors.

        Raises:
            SchemaError: If a parameter schema cannot be turned into a validator.
        """
        if self._tools is None:
            self._tools = [BridgeTool(self, d) for d in self._descriptors]
        return list(self._tools)

    async def call(self, tool_name: str, arguments: dict[str, Any]) -> str:
        """Invoke a remote tool. Never raises; failures come back as text."""
        if self._config.audit:
            logger.info(
                "MCP tool invoke: server='%s' tool='%s' args=%s",
                self.name,
                tool_name,
                sanitize_for_log(arguments),
            )
        try:
            if not self.connected:
                raise BridgeNotConnectedError(self.name)
            if self._call_lock is not None:
                async with self._call_lock:
                    result = await self._session.call_tool(tool_name, arguments)
            else:
                result = await self._session.call_tool(tool_name, arguments)
        except Exception as e:
            logger.warning(
                "MCP tool '%s'/'%s' caused error: %s", self.name, tool_name, strip_secrets(str(e))
            )
            return f"Error executing MCP tool: {e}"

        text = result_to_text(result)
        if self._config.audit:
            logger.info(
                "MCP tool result: server='%s' tool='%s' size=%d",
                self.name,
                tool_name,
                len(text.encode("utf-8")),
            )
        return text

    async def close(self) -> None:
        """Close the transport. Safe to call any number of times."""
        if self._runner is None:
            return
        await self._stop(cancel=False)
        logger.info("MCP server '%s': session closed", self.name)

    async def _stop(self, cancel: bool) -> None:
        runner, self._runner = self._runner, None
        if runner is None:
            return
        if cancel:
            runner.cancel()
        elif self._closing is not None:
            self._closing.set()
        try:
            await asyncio.wait_for(runner, timeout=self._config.timeout)
        except (asyncio.CancelledError, asyncio.TimeoutError):
            pass
        except Exception as e:
            logger.error("MCP server '%s': error during cleanup: %s", self.name, e)
        self._session = None

    async def __aenter__(self) -> MCPSession:
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


class BridgeTool(Tool):
    """A remote tool exposed through an :class:`MCPSession`."""

    def __init__(self, session: MCPSession, descriptor: ToolDescriptor) -> None:
        self._session = session
        self._descriptor = descriptor
        self._validator = ArgumentValidator(descriptor.parameter_schema, descriptor.name)

    def describe(self) -> ToolDescriptor:
        return self._descriptor

    async def invoke(self, args: dict[str, Any]) -> str:
        try:
            arguments = self._validator.validate(args)
        except ValidationError as e:
            raise ToolArgumentsError(
                f"Invalid arguments for {self._descriptor.name}: {e}",
                tool=self._descriptor.name,
                errors=e.errors(),
            ) from e
        return await self._session.call(self._descriptor.name, arguments)

    def __repr__(self) -> str:
        return f"BridgeTool(server={self._session.name!r}, name={self._descriptor.name!r})"


@dataclass
class BridgeConfig:
    """Tool servers known to a bridge, plus the integration → server package map."""

    servers: dict[str, MCPServerConfig] = field(default_factory=dict)
    integration_servers: dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_INTEGRATION_SERVERS)
    )

    def add_server(self, config: MCPServerConfig) -> None:
        self.servers[config.name] = config

    def for_integration(
        self,
        integration: str,
        env: Optional[dict[str, str]] = None,
        tool_defaults: Optional[dict[str, Any]] = None,
        selection_prompt: str = "",
        default_instructions: Optional[str] = None,
    ) -> MCPServerConfig:
        """Build (and register) the stdio config that runs *integration*'s server."""
        package = self.integration_servers.get(integration)
        if not package:
            raise ValueError(f"No MCP server mapping found for integration: {integration}")
        config = MCPServerConfig(
            name=integration,
            transport=STDIO,
            command="npx",
            args=["-y", package],
            env=dict(env or {}),
            selection_prompt=selection_prompt,
            default_instructions=default_instructions,
            tool_defaults=dict(tool_defaults or {}),
        )
        self.add_server(config)
        return config

    @classmethod
    def from_dict(cls, mcp_config: dict[str, Any]) -> BridgeConfig:
        """Create a config from a parsed ``mcp:`` block.

        Example YAML structure::

            mcp:
              integrations:
                linear: "@ibraheem4/linear-mcp"
              servers:
                filesystem:
                  command: "npx"
                  args: ["-y", "@modelcontextprotocol/server-filesystem", "/data"]
                  allowed_tools: ["read_file"]
                  selection_prompt: "Use filesystem for questions about shared files."
                tickets:
                  transport: http
                  url: "https://tools.example.com/mcp"
                  auth_token: "${TICKETS_TOKEN}"
        """
        config = cls()
        config.integration_servers.update(mcp_config.get("integrations") or {})
        for server in parse_mcp_yaml(mcp_config):
            config.add_server(server)
        return config

    @classmethod
    def from_yaml(cls, path: str) -> BridgeConfig:
        with open(path) as f:
            document = yaml.safe_load(f) or {}
        return cls.from_dict(document.get("mcp", document))


def _resolve_env(value: Any) -> Any:
    if isinstance(value, str) and value.startswith("${"):
        return os.environ.get(value.strip("${}"))
    return value


def parse_mcp_yaml(yaml_config: dict[str, Any]) -> list[MCPServerConfig]:
    """Parse the ``mcp:`` block into server configs.

    Args:
        yaml_config: The parsed YAML dict (the value of the ``mcp`` key).

    Returns:
        List of MCPServerConfig objects ready for use with MCPBridge.
    """
    servers_block = yaml_config.get("servers") or {}
    configs: list[MCPServerConfig] = []
    for name, server_def in servers_block.items():
        transport = server_def.get("transport") or (HTTP if server_def.get("url") else STDIO)
        tool_defaults = {
            k: _resolve_env(v) for k, v in (server_def.get("tool_defaults") or {}).items()
        }
        configs.append(
            MCPServerConfig(
                name=name,
                transport=transport,
                command=server_def.get("command", ""),
                args=server_def.get("args", []),
                env=server_def.get("env", {}),
                url=server_def.get("url", ""),
                auth_token=_resolve_env(server_def.get("auth_token")),
                timeout=server_def.get("timeout", 30),
                allowed_tools=server_def.get("allowed_tools"),
                selection_prompt=server_def.get("selection_prompt", ""),
                default_instructions=server_def.get("default_instructions"),
                # Defaults whose variable is unset stay required
                tool_defaults={k: v for k, v in tool_defaults.items() if v is not None},
                audit=server_def.get("audit", True),
            )
        )
    return configs


class MCPBridge:
    """Pool of MCP sessions keyed by server name.

    Sessions are created on first use, reused across orchestration runs,
    and only destroyed by :meth:`close` / :meth:`close_all`.
    """

    def __init__(self, config: Optional[BridgeConfig] = None) -> None:
        self._config = config or BridgeConfig()
        self._sessions: dict[str, MCPSession] = {}
        self._lock = asyncio.Lock()
        self.failures: dict[str, BridgeInitializationError] = {}

    @property
    def config(self) -> BridgeConfig:
        return self._config

    @property
    def server_names(self) -> list[str]:
        return list(self._config.servers)

    async def connect(self, config: MCPServerConfig) -> MCPSession:
        """Open a new session for *config* and enumerate its tools.

        Raises:
            BridgeInitializationError: If the server cannot be reached or its
                tools cannot be listed and validated.
        """
        session = MCPSession(config)
        await session.connect()
        try:
            await session.list_tools()
            session.tools()
        except Exception as e:
            await session.close()
            logger.error(
                "Failed to load tools from MCP server '%s': %s", config.name, strip_secrets(str(e))
            )
            raise BridgeInitializationError(
                config.name, f"Failed to load tools from MCP server '{config.name}': {e}", cause=e
            ) from e
        return session

    async def session(self, name: str) -> MCPSession:
        """Return the pooled session for *name*, connecting on first use."""
        config = self._config.servers.get(name)
        if config is None:
            raise KeyError(f"Unknown MCP server: '{name}'. Available: {self.server_names}")
        async with self._lock:
            existing = self._sessions.get(name)
            if existing is not None and existing.connected:
                return existing
            if existing is not None:
                await existing.close()
            session = await self.connect(config)
            self._sessions[name] = session
            return session

    async def load_categories(self, names: Optional[list[str]] = None) -> list[ToolCategory]:
        """Build one tool category per server, skipping servers that fail.

        Failures are logged and kept in :attr:`failures` keyed by server name;
        the remaining servers' tools stay usable.
        """
        categories: list[ToolCategory] = []
        for name in names if names is not None else self.server_names:
            try:
                session = await self.session(name)
            except BridgeInitializationError as e:
                logger.error("Skipping MCP server '%s': %s", name, e.message)
                self.failures[name] = e
                continue
            self.failures.pop(name, None)
            tools = session.tools()
            if not tools:
                continue
            categories.append(
                ToolCategory(
                    key=name,
                    tools=tools,
                    selection_prompt=session.config.selection_prompt,
                    default_instructions=session.config.default_instructions,
                )
            )
        logger.info(
            "MCP tools resolved: %d categories from %d servers",
            len(categories),
            len(names if names is not None else self.server_names),
        )
        return categories

    async def close(self, name: str) -> None:
        async with self._lock:
            session = self._sessions.pop(name, None)
        if session is not None:
            await session.close()

    async def close_all(self) -> None:
        """Close every pooled session."""
        async with self._lock:
            sessions, self._sessions = list(self._sessions.values()), {}
        for session in sessions:
            try:
                await session.close()
            except Exception as exc:
                logger.warning("Error disconnecting from MCP server '%s': %s", session.name, exc)

    async def __aenter__(self) -> MCPBridge:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close_all()
