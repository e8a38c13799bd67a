"""Reconciliation of streamed fragments into one display-stable message.

The backend emits text in small pieces. Rendering every intermediate state
makes the reply flicker and can briefly show interim markers (an ellipsis
while the model "thinks") as if they were the answer. The buffer below hides
those states and only reports candidates worth rendering.
"""

import re

PLACEHOLDER_MARKER = "..."

_BLANK_LINE_RUN = re.compile(r"\n[ \t]*(?:\n[ \t]*)+")
_INTERIOR_WHITESPACE = re.compile(r"[ \t\f\v]{2,}")


def leading_placeholder_length(text: str, placeholder: str = PLACEHOLDER_MARKER) -> int:
    """Length of the raw prefix made only of whitespace and placeholder markers."""
    index = len(text) - len(text.lstrip())
    if placeholder:
        while text.startswith(placeholder, index):
            rest = text[index + len(placeholder):]
            index = len(text) - len(rest.lstrip())
    return index


def _collapse(text: str) -> str:
    candidate = text.replace("\r\n", "\n").replace("\r", "\n").strip()
    candidate = _BLANK_LINE_RUN.sub("\n\n", candidate)
    candidate = _INTERIOR_WHITESPACE.sub(" ", candidate)
    return candidate


def normalize_text(text: str, placeholder: str = PLACEHOLDER_MARKER) -> str:
    """Normalize accumulated output for display.

    - Line endings are unified to ``\\n``
    - Leading/trailing whitespace is trimmed
    - Runs of blank lines collapse to a single blank line
    - Runs of interior spaces/tabs collapse to a single space
    - Leading placeholder markers emitted before real content are dropped

    Args:
        text: Raw accumulated text
        placeholder: Interim marker the backend emits while warming up

    Returns:
        Normalized candidate text (may be empty)
    """
    return _collapse(text[leading_placeholder_length(text, placeholder):])


class ReconciliationBuffer:
    """Collapse a fragment stream into one normalized running message.

    Usage:
        buffer = ReconciliationBuffer()
        async for fragment in stream:
            update = buffer.feed(fragment)
            if update is not None:
                render(update)
        render(buffer.finalize())
    """

    def __init__(self, placeholder: str = PLACEHOLDER_MARKER):
        self._placeholder = placeholder
        self._parts: list[str] = []
        self._last_emitted: str | None = None
        # Length of the raw leading placeholder prefix, fixed at the first emission
        self._lead: int | None = None

    @property
    def text(self) -> str:
        """Raw accumulated text."""
        return "".join(self._parts)

    @property
    def last_emitted(self) -> str | None:
        """Most recent candidate reported by :meth:`feed` or :meth:`finalize`."""
        return self._last_emitted

    def is_placeholder(self, candidate: str) -> bool:
        """Check whether a candidate is still an interim/incomplete state."""
        if not candidate:
            return True
        return bool(self._placeholder) and candidate.endswith(self._placeholder)

    def _candidate(self) -> tuple[int, str]:
        text = self.text
        lead = self._lead
        if lead is None:
            lead = leading_placeholder_length(text, self._placeholder)
        return lead, _collapse(text[lead:])

    def feed(self, fragment: str) -> str | None:
        """Append a fragment and return a new candidate if one should be shown.

        Args:
            fragment: Next piece of generated text

        Returns:
            The normalized candidate, or None when the update is suppressed
            (empty, ends with the placeholder marker, or unchanged)
        """
        if fragment:
            self._parts.append(fragment)
        lead, candidate = self._candidate()
        if self.is_placeholder(candidate) or candidate == self._last_emitted:
            return None
        self._lead = lead
        self._last_emitted = candidate
        return candidate

    def finalize(self) -> str:
        """Return the full normalized accumulator, ignoring suppression rules."""
        _, final = self._candidate()
        self._last_emitted = final
        return final

    def reset(self) -> None:
        """Drop all accumulated text."""
        self._parts.clear()
        self._last_emitted = None
        self._lead = None
