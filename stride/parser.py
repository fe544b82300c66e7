"""Parser for quick-add task input such as "Call the bank tomorrow high"."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

# Regex patterns, checked in priority order
RE_URGENCY_KEYWORDS = [
    ("high", re.compile(r"\b(urgent|high priority|high)\b", re.IGNORECASE)),
    ("medium", re.compile(r"\b(medium priority|medium)\b", re.IGNORECASE)),
    ("low", re.compile(r"\b(low priority|low)\b", re.IGNORECASE)),
]
RE_TRAILING_FLAG = re.compile(r"\s+(high|medium|low|urgent)$", re.IGNORECASE)

TIME_KEYWORDS = ["today", "tomorrow", "tonight"]


@dataclass
class ParsedInput:
    """Task fields extracted from free-form input."""

    clean_text: str
    urgency: str | None = None
    tags: list[str] = field(default_factory=list)


def parse_task_input(text: str) -> ParsedInput:
    """Extract urgency and time tags from raw task input.

    Urgency words anywhere in the text set the urgency but are left in
    place. A single trailing flag word ("Buy milk high") is treated as a
    command: it is stripped from the text and decides the urgency.
    """
    result = ParsedInput(clean_text=text)

    for urgency, pattern in RE_URGENCY_KEYWORDS:
        if pattern.search(text):
            result.urgency = urgency
            break

    for keyword in TIME_KEYWORDS:
        if re.search(rf"\b{keyword}\b", text, re.IGNORECASE):
            result.tags.append(keyword)

    m = RE_TRAILING_FLAG.search(text)
    if m:
        flag = m.group(1).lower()
        result.clean_text = text[: m.start()]
        result.urgency = "high" if flag == "urgent" else flag

    return result
