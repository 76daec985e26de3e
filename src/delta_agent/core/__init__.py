"""Core subpackage - response-to-action pipeline and model plumbing."""

from delta_agent.core.conversation import ConversationManager
from delta_agent.core.executor import ToolExecutor, WorkspaceError
from delta_agent.core.llm import LLMClient
from delta_agent.core.parser import ParseResult, ResponseParser
from delta_agent.core.patch import PatchEngine, PatchFailure
from delta_agent.core.rate_limiter import RateBudget, RateLimiter, Reservation
from delta_agent.core.requests import ChangeFile, DeltaBlock, ExecuteCommand, ReadFile, ToolRequest
from delta_agent.core.session import Session, TurnResult
from delta_agent.core.system_prompt import SYSTEM_PROMPT
from delta_agent.core.tool_result import ToolResult
