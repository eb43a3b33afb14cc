"""
Quix - Agent orchestration core for a Slack-facing assistant.

Routes natural-language requests to tool providers through an LLM:
category selection, planning, a bounded tool-calling loop, and a bridge to
out-of-process MCP tool servers.
"""

from .common import COMMON_CATEGORY, common_category, get_current_date_time
from .config import QuixConfig
from .engine import DEFAULT_MAX_CYCLES, ExecutionEngine, ExecutionState
from .exceptions import (
    BridgeInitializationError,
    BridgeNotConnectedError,
    ExecutionLimitError,
    ModelCallError,
    ModelTimeoutError,
    PlanningError,
    QuixError,
    SchemaError,
    SelectionError,
    ToolArgumentsError,
    ToolNotFoundError,
)
from .llm import (
    AnthropicChatModel,
    ChatModel,
    ChatResponse,
    LLMConfig,
    OpenAIChatModel,
    create_chat_model,
)
from .mcp import (
    BridgeConfig,
    BridgeTool,
    MCPBridge,
    MCPServerConfig,
    MCPSession,
    parse_mcp_yaml,
)
from .models import (
    ExecutionResult,
    MessageRole,
    OrchestrationResult,
    Outcome,
    Plan,
    PlanStep,
    ReasonStep,
    SelectionResult,
    SideEffect,
    ToolCall,
    ToolCallRecord,
    ToolCategory,
    ToolDescriptor,
    ToolStep,
    TranscriptMessage,
)
from .orchestrator import Orchestrator
from .planner import PlanGenerator
from .schema import ArgumentValidator, apply_defaults, normalize_schema, schema_to_model
from .selector import ToolCategorySelector
from .tools import FunctionTool, Tool, ToolRegistry, define_tool, tool
from .tracker import (
    MAX_RESULT_LENGTH,
    TRUNCATION_MARKER,
    CompositeObserver,
    ExecutionObserver,
    LoggingObserver,
    ToolCallTracker,
)

__version__ = "0.1.0"
__all__ = [
    "Orchestrator",
    "QuixConfig",
    "ToolCategorySelector",
    "PlanGenerator",
    "ExecutionEngine",
    "ExecutionState",
    "DEFAULT_MAX_CYCLES",
    "ExecutionObserver",
    "ToolCallTracker",
    "LoggingObserver",
    "CompositeObserver",
    "MAX_RESULT_LENGTH",
    "TRUNCATION_MARKER",
    "Tool",
    "FunctionTool",
    "ToolRegistry",
    "define_tool",
    "tool",
    "ArgumentValidator",
    "normalize_schema",
    "apply_defaults",
    "schema_to_model",
    "ChatModel",
    "ChatResponse",
    "LLMConfig",
    "OpenAIChatModel",
    "AnthropicChatModel",
    "create_chat_model",
    "MCPBridge",
    "MCPSession",
    "MCPServerConfig",
    "BridgeConfig",
    "BridgeTool",
    "parse_mcp_yaml",
    "COMMON_CATEGORY",
    "common_category",
    "get_current_date_time",
    "SideEffect",
    "MessageRole",
    "Outcome",
    "ToolDescriptor",
    "ToolCategory",
    "ToolStep",
    "ReasonStep",
    "PlanStep",
    "Plan",
    "ToolCall",
    "TranscriptMessage",
    "ToolCallRecord",
    "SelectionResult",
    "ExecutionResult",
    "OrchestrationResult",
    "QuixError",
    "SelectionError",
    "PlanningError",
    "ModelCallError",
    "ModelTimeoutError",
    "ExecutionLimitError",
    "ToolNotFoundError",
    "ToolArgumentsError",
    "SchemaError",
    "BridgeInitializationError",
    "BridgeNotConnectedError",
]
