"""
Nova AI Orchestration - Mode Classifier

Labels a request "single" (one tool-use loop) or "multi" (plan + execute).

Primary path asks a fast model for a one-word answer. Anything other than
exactly "multi" maps to single, the cheaper path. When the fast model is
not configured or fails, heuristic_classify() decides; it is a pure
function of the request text.
"""

import logging
import re

from .models import Mode

logger = logging.getLogger(__name__)

CLASSIFIER_SYSTEM_PROMPT = (
    'Classify the user request as "multi" (requires multiple steps, tools, or complex reasoning) '
    'or "single" (simple one-step action). Respond with only "multi" or "single".'
)

# Ordered; the first match decides
MULTI_STEP_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\band\b.*\bthen\b",  # X and then Y
        r"\bfirst\b.*\bthen\b",
        r"\bmultiple\b",
        r"\beach\b.*\bpage\b",
        r"\ball\b.*\bpages\b",
        r"\bcreate.*\band\b.*\b(set|update|configure)",
        r"\banalyze\b.*\band\b.*\b(fix|improve|suggest)",
        r"step\s*\d",
        r"\d+\.\s+",  # enumerated list
    )
]


def heuristic_classify(text: str) -> Mode:
    """Regex fallback: multi if any sequencing/enumeration/breadth pattern matches."""
    for pattern in MULTI_STEP_PATTERNS:
        if pattern.search(text):
            return Mode.MULTI
    return Mode.SINGLE


def normalize_label(reply: str) -> Mode:
    return Mode.MULTI if (reply or "").strip().lower() == "multi" else Mode.SINGLE


class ModeClassifier:
    """Fast-model classification with the regex heuristic as fallback."""

    def __init__(self, client=None):
        """
        Args:
            client: Optional fast classifier (classify(system_prompt, text) -> str)
        """
        self.client = client

    async def classify(self, text: str) -> Mode:
        if self.client is None:
            return heuristic_classify(text)

        try:
            reply = await self.client.classify(CLASSIFIER_SYSTEM_PROMPT, text)
        except Exception as e:
            mode = heuristic_classify(text)
            logger.warning(f"Fast classifier failed ({type(e).__name__}: {e}), heuristic chose {mode.value}")
            return mode

        mode = normalize_label(reply)
        logger.debug(f"Fast classifier replied {reply!r} -> {mode.value}")
        return mode
