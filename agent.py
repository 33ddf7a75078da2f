# agent.py
from __future__ import annotations

import json
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Union

from loguru import logger

from models import Message
from outcome import AgentError, Outcome
from prompts import TOOL_CALL_CLOSE, TOOL_CALL_OPEN, build_system_prompt, tool_failure_prompt, tool_success_prompt
from router import BackendRouter
from tools.registry import ToolRegistry

HISTORY_WINDOW = 10


class TurnState(str, Enum):
    BUILD_PROMPT = "build_prompt"
    AWAIT_MODEL = "await_model"
    PARSE_TOOL_CALL = "parse_tool_call"
    EXECUTE_TOOL = "execute_tool"
    AWAIT_FOLLOWUP = "await_followup"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class ToolCallRequest:
    tool_name: str
    parameters: Dict[str, Any]
    reasoning: str = ""


@dataclass(frozen=True)
class TextReply:
    text: str


@dataclass(frozen=True)
class ToolCall:
    request: ToolCallRequest
    raw: str


Reply = Union[TextReply, ToolCall]


# --------------------------- reply parsing ---------------------------

def _strip_fence(body: str) -> str:
    s = body.strip()
    if s.startswith("```"):
        s = s.split("\n", 1)[1] if "\n" in s else ""
        if s.rstrip().endswith("```"):
            s = s.rstrip()[:-3]
    return s.strip()


def _decode_request(body: str) -> Optional[ToolCallRequest]:
    """A tool call needs a non-empty string tool_name and an object parameters."""
    try:
        obj = json.loads(_strip_fence(body))
    except (ValueError, TypeError):
        return None
    if not isinstance(obj, dict):
        return None
    name = obj.get("tool_name")
    params = obj.get("parameters")
    reasoning = obj.get("reasoning", "")
    if not isinstance(name, str) or not name.strip() or not isinstance(params, dict):
        return None
    if reasoning is None:
        reasoning = ""
    if not isinstance(reasoning, str):
        return None
    return ToolCallRequest(tool_name=name.strip(), parameters=params, reasoning=reasoning)


def parse_reply(text: str, allow_brace_fallback: bool = True) -> Reply:
    """
    TextReply | ToolCall. The explicit <tool_call>...</tool_call> channel wins;
    otherwise (when allowed) the span from the first '{' to the last '}' is
    tried. Anything that doesn't decode to a full request is plain text.
    """
    text = text or ""
    start = text.find(TOOL_CALL_OPEN)
    if start >= 0:
        body_start = start + len(TOOL_CALL_OPEN)
        end = text.find(TOOL_CALL_CLOSE, body_start)
        body = text[body_start:end] if end >= 0 else text[body_start:]
        req = _decode_request(body)
        if req is not None:
            return ToolCall(request=req, raw=body)
        logger.debug("parse_reply: malformed <tool_call> block; treating as text")
        return TextReply(text)

    if allow_brace_fallback:
        first, last = text.find("{"), text.rfind("}")
        if first >= 0 and last > first:
            span = text[first:last + 1]
            req = _decode_request(span)
            if req is not None:
                return ToolCall(request=req, raw=span)
    return TextReply(text)


# --------------------------- turn record ---------------------------

@dataclass
class Turn:
    user_message: str
    states: List[TurnState] = field(default_factory=list)
    history_size: int = 0
    first_response: Optional[str] = None
    tool_request: Optional[ToolCallRequest] = None
    tool_outcome: Optional[Outcome] = None
    outcome: Optional[Outcome] = None

    @property
    def state(self) -> Optional[TurnState]:
        return self.states[-1] if self.states else None

    def enter(self, state: TurnState) -> None:
        logger.debug("turn → {}", state.value)
        self.states.append(state)

    def done(self, text: str) -> "Turn":
        self.enter(TurnState.DONE)
        self.outcome = Outcome.success(text)
        return self

    def fail(self, error: AgentError) -> "Turn":
        self.enter(TurnState.FAILED)
        self.outcome = Outcome.failure(error)
        return self


# --------------------------- orchestrator ---------------------------

class AgentOrchestrator:
    """
    One user turn: prompt → model → optional single tool round → answer.
    The second model response is final even if it asks for another tool.
    """

    def __init__(
        self,
        router: BackendRouter,
        tools: ToolRegistry,
        system_prompt: Optional[str] = None,
        allow_brace_fallback: bool = True,
        max_workers: int = 2,
    ):
        self.router = router
        self.tools = tools
        self.system_prompt = system_prompt or build_system_prompt(tools.list_tools())
        self.allow_brace_fallback = allow_brace_fallback
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="turn")
        logger.info(
            "AgentOrchestrator init → tools={} brace_fallback={} system_prompt_len={}",
            len(tools.list_tools()), allow_brace_fallback, len(self.system_prompt),
        )

    # --------------------------- Prompt ---------------------------

    def build_history(self, history: Sequence[Message]) -> List[Message]:
        """System instructions + the most recent HISTORY_WINDOW entries."""
        recent = [m for m in history if not m.is_system][-HISTORY_WINDOW:]
        conv = recent[-1].conversation_id if recent else "default"
        return [Message.system(self.system_prompt, conversation_id=conv)] + recent

    # --------------------------- Public API ---------------------------

    def run_turn(self, user_message: str, history: Sequence[Message] = ()) -> Turn:
        turn = Turn(user_message=user_message)
        try:
            return self._run(turn, history)
        except Exception as e:
            logger.exception("AgentOrchestrator: turn crashed in state {}: {}", turn.state, e)
            return turn.fail(AgentError(f"internal error: {e}"))

    def process_message(self, user_message: str, history: Sequence[Message] = ()) -> Outcome:
        return self.run_turn(user_message, history).outcome

    def submit(self, user_message: str, history: Sequence[Message] = ()) -> "Future[Outcome]":
        """Run the turn on a background worker."""
        return self._pool.submit(self.process_message, user_message, list(history))

    def close(self) -> None:
        self._pool.shutdown(wait=True)

    # --------------------------- state machine ---------------------------

    def _run(self, turn: Turn, history: Sequence[Message]) -> Turn:
        logger.info("AgentOrchestrator.turn → prompt='{}...'", (turn.user_message or "")[:200])

        turn.enter(TurnState.BUILD_PROMPT)
        prompt_history = self.build_history(history)
        turn.history_size = len(prompt_history)
        # pin the config so both generations of the turn hit the same backend
        config = self.router.configs.get_active()

        turn.enter(TurnState.AWAIT_MODEL)
        first = self.router.generate(turn.user_message, prompt_history, config)
        if not first.ok:
            logger.warning("turn failed awaiting model: {}", first.error)
            return turn.fail(first.error)
        turn.first_response = first.value

        turn.enter(TurnState.PARSE_TOOL_CALL)
        reply = parse_reply(first.value, self.allow_brace_fallback)
        if isinstance(reply, TextReply):
            logger.info("turn → plain reply ({} chars)", len(reply.text))
            return turn.done(reply.text)

        req = reply.request
        turn.tool_request = req
        logger.info("turn → tool '{}' params={} reasoning='{}'",
                    req.tool_name, list(req.parameters.keys()), req.reasoning[:120])

        turn.enter(TurnState.EXECUTE_TOOL)
        result = self.tools.execute(req.tool_name, req.parameters)
        turn.tool_outcome = result
        if result.ok:
            followup = tool_success_prompt(turn.user_message, req.tool_name, result.value)
        else:
            logger.info("tool '{}' failed; asking model to explain: {}", req.tool_name, result.error)
            followup = tool_failure_prompt(turn.user_message, str(result.error))

        turn.enter(TurnState.AWAIT_FOLLOWUP)
        second = self.router.generate(followup, prompt_history, config)
        if not second.ok:
            logger.warning("turn failed awaiting follow-up: {}", second.error)
            return turn.fail(second.error)
        logger.info("turn → final answer after tool ({} chars)", len(second.value))
        return turn.done(second.value)
