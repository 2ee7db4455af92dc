"""research_assistant/tool_router.py

Decides, via one model call, whether a question needs a web search first.

The router fails open: a malformed, error-shaped or unrecognised decision is
treated as "answer directly", never as a reason to abort the request.
"""

from __future__ import annotations

# Standard Library
import logging
from datetime import date
from typing import Any

# Local Modules
from research_assistant.extractor import find_json_object
from research_assistant.invoker import ModelInvoker
from research_assistant.models import SamplingParams, ToolDecision
from research_assistant.prompts import compose_tool_decision

logger = logging.getLogger(__name__)

WEB_SEARCH_TOOL: str = "web_search"
KNOWN_TOOLS: frozenset[str] = frozenset({WEB_SEARCH_TOOL})

# Deterministic routing decision.
ROUTER_SAMPLING: SamplingParams = SamplingParams(temperature=0.0)


def _tool_fields(parsed: dict[str, Any]) -> tuple[str, str]:
    """Read tool name and query from a decision object.

    Accepts the prompted ``{"tool", "query"}`` shape as well as the
    function-call shape ``{"name", "arguments": {"query"}}`` some models
    fall back to.
    """
    name = parsed.get("tool") or parsed.get("name") or ""
    query = parsed.get("query")
    arguments = parsed.get("arguments")
    if not query and isinstance(arguments, dict):
        query = arguments.get("query")
    return str(name).strip(), str(query or "").strip()


def parse_decision(raw_text: str, question: str) -> ToolDecision:
    """Parse router output into a :class:`ToolDecision`.

    Args:
        raw_text: Raw text from the decision call.
        question: The user question, used when the model names the tool but
            omits a query.

    Returns:
        The decision.  Any parse problem yields ``invoke=False``.
    """
    parsed = find_json_object(raw_text)
    if parsed is None:
        logger.warning("[tool_router] decision is not JSON - defaulting to direct answer")
        return ToolDecision(invoke=False, raw=raw_text)

    if "error" in parsed and len(parsed) == 1:
        logger.warning("[tool_router] decision call failed (%s) - direct answer", parsed["error"])
        return ToolDecision(invoke=False, raw=raw_text)

    name, query = _tool_fields(parsed)
    if not name:
        return ToolDecision(invoke=False, raw=raw_text)
    if name not in KNOWN_TOOLS:
        logger.warning("[tool_router] unknown tool %r requested - direct answer", name)
        return ToolDecision(invoke=False, raw=raw_text)

    return ToolDecision(invoke=True, tool_name=name, query=query or question, raw=raw_text)


class ToolRouter:
    """Runs the tool-decision call for the tool-augmented strategy."""

    def __init__(self, invoker: ModelInvoker) -> None:
        self.invoker = invoker

    def decide(self, question: str, today: date | None = None) -> ToolDecision:
        """Ask the model whether a web search is needed.

        Args:
            question: The user question.
            today: Date to embed in the prompt; defaults to today.

        Returns:
            A :class:`ToolDecision`.  Never raises.
        """
        prompt = compose_tool_decision(question, today=today)
        output = self.invoker.invoke(prompt.text, ROUTER_SAMPLING, structured=True)
        logger.info("[tool_router] raw=%r", output.text[:300])

        decision = parse_decision(output.text, question)
        logger.info(
            "[tool_router] invoke=%s tool=%s query=%r",
            decision.invoke,
            decision.tool_name,
            decision.query,
        )
        return decision
