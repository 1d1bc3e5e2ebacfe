"""Ordered model list with a cursor, for trying fallback models in turn."""

from __future__ import annotations

from collections.abc import Iterable


class FallbackRouting:
    """
    Primary model followed by its fallbacks, de-duplicated in order.

    With no models at all the list holds a single None entry, meaning
    "let the invoker choose".

    Example:
        routing = FallbackRouting("A", ["B", "A", "C"])
        routing.models         # ["A", "B", "C"]
        routing.current_model  # "A"
        routing.advance()      # "B"
    """

    def __init__(self, primary: str | None, fallback_models: Iterable[str] | None = None):
        candidates = [primary, *(fallback_models or ())]
        self.models: list[str | None] = list(dict.fromkeys(m for m in candidates if m is not None))
        if not self.models:
            # No explicit model: the invoker picks its own default.
            self.models = [None]
        self._index = 0

    @property
    def current_model(self) -> str | None:
        if self.exhausted:
            return None
        return self.models[self._index]

    def advance(self) -> str | None:
        """Move to the next model and return it, or None past the end."""
        self._index += 1
        return self.current_model

    @property
    def exhausted(self) -> bool:
        return self._index >= len(self.models)

    @property
    def has_more(self) -> bool:
        """True if a model remains after the current one."""
        return self._index < len(self.models) - 1

    def reset(self) -> None:
        self._index = 0

    def __repr__(self) -> str:
        return f"FallbackRouting(models={self.models!r}, current={self.current_model!r})"
