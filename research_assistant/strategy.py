"""research_assistant/strategy.py

Prompt-strategy selection for plain (non-RAG, non-tool) questions.

An explicit caller mode always wins.  In ``auto`` mode a fixed heuristic picks
the number of worked examples: long or comparative questions get two, very
short questions get none, everything else gets one.
"""

from __future__ import annotations

# Standard Library
import logging

# Local Modules
from research_assistant.models import PromptStrategy, QueryMode

logger = logging.getLogger(__name__)

# Exact cutoffs; changing them changes which prompt users get.
FEW_SHOT_MIN_LENGTH: int = 40
ZERO_SHOT_MAX_LENGTH: int = 20
COMPARE_KEYWORD: str = "compare"


def select_strategy(text: str, mode: QueryMode | str = QueryMode.AUTO) -> PromptStrategy:
    """Choose the prompt strategy for a question.

    Precedence in ``auto`` mode:
      1. contains "compare" (case-insensitive) or longer than 40 chars → few-shot
      2. shorter than 20 chars → zero-shot
      3. otherwise → one-shot

    Lengths count the characters of ``text`` as received.

    Args:
        text: The question text.
        mode: Explicit caller mode, or ``"auto"``.

    Returns:
        The selected :class:`PromptStrategy`.
    """
    mode = QueryMode(mode)
    if mode is not QueryMode.AUTO:
        return PromptStrategy(mode.value)

    length = len(text)
    if COMPARE_KEYWORD in text.lower() or length > FEW_SHOT_MIN_LENGTH:
        strategy = PromptStrategy.FEW_SHOT
    elif length < ZERO_SHOT_MAX_LENGTH:
        strategy = PromptStrategy.ZERO_SHOT
    else:
        strategy = PromptStrategy.ONE_SHOT

    logger.debug("[strategy] auto length=%d -> %s", length, strategy)
    return strategy
