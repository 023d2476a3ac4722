"""Explicit "remember this" requests in user messages."""

import re
from dataclasses import dataclass

TRIGGER_PATTERNS = (
    re.compile(r"\b(?:remember|memorize)\s+(?:that|this)", re.IGNORECASE),
    re.compile(r"\b(?:save|store|keep|note)\s+(?:this|that)\s+(?:in\s+)?(?:memory|mind)", re.IGNORECASE),
    re.compile(r"\bkeep\s+in\s+mind\b", re.IGNORECASE),
    re.compile(r"\bdon'?t\s+forget\b", re.IGNORECASE),
    re.compile(r"\bnote\s+(?:that|this)\b", re.IGNORECASE),
    re.compile(r"\bfor\s+(?:future|later)\s+reference\b", re.IGNORECASE),
)

_LEADING_PUNCT = re.compile(r"^[,.:;-]\s*")


@dataclass
class TriggerResult:
    triggered: bool
    content: str | None = None


def detect_memory_trigger(message: str) -> TriggerResult:
    if any(p.search(message) for p in TRIGGER_PATTERNS):
        return TriggerResult(triggered=True, content=extract_memory_content(message))
    return TriggerResult(triggered=False)


def extract_memory_content(message: str) -> str:
    """Strip trigger phrases; falls back to the whole message when nothing is left."""
    content = message
    for pattern in TRIGGER_PATTERNS:
        content = pattern.sub("", content).strip()
    content = _LEADING_PUNCT.sub("", content)
    return content or message
