"""Inline directive grammar for streamed model output.

The model embeds control tags anywhere in its reply::

    <thinking step="LABEL" />
    <generate_image prompt="PROMPT" />
    <auto_specialist_mode subject="KEY">...</auto_specialist_mode>
    <action>JSON</action>

Tags may be split across chunk boundaries, so every function here works on
the cumulative buffer received so far rather than on a single chunk.
Stripping is idempotent: stripping an already stripped text is a no-op.
"""

import re
from dataclasses import dataclass, field

THINKING_STEP_RE = re.compile(r'<thinking step="([^"]+)"\s*/>')
GENERATE_IMAGE_RE = re.compile(r'<generate_image prompt="([^"]+)"\s*/>')
AUTO_SPECIALIST_START_RE = re.compile(r'<auto_specialist_mode subject="([^"]+)">')
AUTO_SPECIALIST_END_RE = re.compile(r"</auto_specialist_mode>")
ACTION_RE = re.compile(r"<action>(.*?)</action>", re.DOTALL)

_INLINE_PATTERNS = (
    THINKING_STEP_RE,
    GENERATE_IMAGE_RE,
    AUTO_SPECIALIST_START_RE,
    AUTO_SPECIALIST_END_RE,
)

# Openers of tags that are only complete once "/>" arrives
_SELF_CLOSING_OPENERS = ("<thinking ", "<generate_image ")
# Openers of tags that are complete at the first ">"
_BRACKET_OPENERS = ("<auto_specialist_mode ", "</auto_specialist_mode", "<action")
_ALL_OPENERS = _SELF_CLOSING_OPENERS + _BRACKET_OPENERS
_ACTION_OPEN = "<action>"


@dataclass
class DirectiveScan:
    """Directives found in a buffer."""

    thinking_steps: list[str] = field(default_factory=list)
    thinking_match_count: int = 0
    image_prompt: str | None = None
    specialist_subject: str | None = None
    action_payload: str | None = None


def scan(buffer: str) -> DirectiveScan:
    """Extract every directive from the cumulative buffer.

    Thinking steps are de-duplicated by exact label in first-seen order.
    Only the last image prompt is kept; the first specialist subject and the
    first complete action payload win.
    """
    labels = THINKING_STEP_RE.findall(buffer)
    prompts = GENERATE_IMAGE_RE.findall(buffer)
    subject = AUTO_SPECIALIST_START_RE.search(buffer)
    action = ACTION_RE.search(buffer)

    return DirectiveScan(
        thinking_steps=list(dict.fromkeys(labels)),
        thinking_match_count=len(labels),
        image_prompt=prompts[-1] if prompts else None,
        specialist_subject=subject.group(1) if subject else None,
        action_payload=action.group(1) if action else None,
    )


def strip_directives(text: str, include_action: bool = True) -> str:
    """Remove complete directive tags from text.

    Args:
        text: Buffer to clean
        include_action: Also remove ``<action>...</action>`` blocks

    Returns:
        Text with the directive markup removed and nothing else changed
    """
    patterns = (ACTION_RE, *_INLINE_PATTERNS) if include_action else _INLINE_PATTERNS
    # Removing one tag can splice the halves of another together; repeat
    # until nothing matches.
    while True:
        cleaned = text
        for pattern in patterns:
            cleaned = pattern.sub("", cleaned)
        if cleaned == text:
            return text
        text = cleaned


def _pending_tag_start(text: str) -> int | None:
    """Index of a trailing, not yet complete directive tag, if any."""
    idx = text.rfind("<")
    if idx == -1:
        return None
    tail = text[idx:]

    if any(opener.startswith(tail) for opener in _ALL_OPENERS):
        return idx
    if tail.startswith(_SELF_CLOSING_OPENERS) and "/>" not in tail:
        return idx
    if tail.startswith(_BRACKET_OPENERS) and ">" not in tail:
        return idx
    return None


def live_text(buffer: str) -> str:
    """Project a partially received buffer into displayable text.

    Complete directives are removed. An ``<action>`` block that has not been
    closed yet and a trailing tag that is still arriving are held back so
    that no markup is ever shown while streaming.
    """
    text = strip_directives(buffer)

    open_action = text.find(_ACTION_OPEN)
    if open_action != -1:
        text = text[:open_action]

    pending = _pending_tag_start(text)
    if pending is not None:
        text = text[:pending]

    return text.lstrip()


def final_text(buffer: str, placeholder: str = "...") -> str:
    """Clean a completed buffer for the finalized message."""
    return strip_directives(buffer).strip() or placeholder
