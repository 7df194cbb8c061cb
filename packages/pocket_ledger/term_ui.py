"""Tiny terminal UI helpers (prompt_toolkit-based).

Pickers used by the interactive staging session. They are kept apart from the
reconciliation engine so the engine never sees a half-made selection: every
picker returns either a confirmed choice or ``None`` for cancel, and the
caller only calls into the engine with a confirmed choice.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from prompt_toolkit import PromptSession
from prompt_toolkit.auto_suggest import AutoSuggest, Suggestion
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.styles import Style
from prompt_toolkit.validation import ValidationError, Validator

from .categories import validate_name as _validate_name
from .models import Category

CREATE_SENTINEL = "+ Create new category..."


class CreateCategoryRequest:
    """Return type for the creation flow: carries the typed candidate name."""

    __slots__ = ("name",)

    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:  # pragma: no cover - trivial repr
        return f"CreateCategoryRequest(name={self.name!r})"


def _session_for(session: PromptSession | None, kb: KeyBindings) -> PromptSession:
    if session is None:
        return PromptSession(key_bindings=kb)
    return PromptSession(
        input=getattr(session, "input", None),
        output=getattr(session, "output", None),
        key_bindings=kb,
    )


def _cancel_bindings() -> KeyBindings:
    kb = KeyBindings()

    @kb.add("escape")
    def _(event) -> None:  # pragma: no cover - exercised indirectly
        event.app.exit(result=None)

    @kb.add("c-c", eager=True)
    def _(event) -> None:  # pragma: no cover - exercised indirectly
        event.app.exit(result=None)

    return kb


# ----------------------------------------------------------------------------
# Category picker
# ----------------------------------------------------------------------------


class _PrefixSuggest(AutoSuggest):
    def __init__(self, vocab: Sequence[str], allow_create: bool) -> None:
        self._vocab = list(vocab)
        self._allow_create = allow_create

    def get_suggestion(self, buffer, document):
        text = document.text
        if not text:
            return None
        lower = text.lower()
        if any(w.lower() == lower for w in self._vocab):
            return None
        for w in self._vocab:
            if w.lower().startswith(lower):
                return Suggestion(w[len(text) :]) if len(w) > len(text) else None
        if self._allow_create:
            return Suggestion(f"  [Create '{text}'?]")
        return None


def select_category(
    categories: Sequence[Category],
    *,
    default: str,
    message: str = "Category (Enter to accept): ",
    session: PromptSession | None = None,
    allow_create: bool = True,
) -> Category | CreateCategoryRequest | None:
    """Prompt for one of ``categories`` by name.

    Tab or Enter completes a typed prefix. An unknown name (or the explicit
    "+ Create new category..." option) returns a :class:`CreateCategoryRequest`
    when ``allow_create`` is set. Esc or Ctrl+C returns ``None``.
    """

    by_lower = {c.name.lower(): c for c in categories}
    names = [c.name for c in categories]
    words = names + [CREATE_SENTINEL] if allow_create else names

    def _best_prefix_match(text: str) -> str | None:
        lower = text.lower()
        if not lower or lower in by_lower:
            return None
        return next((w for w in names if w.lower().startswith(lower)), None)

    kb = _cancel_bindings()

    @kb.add("tab", eager=True)
    def _(event) -> None:  # pragma: no cover - integration path
        b = event.app.current_buffer
        cand = _best_prefix_match(b.document.text)
        if cand:
            b.insert_text(cand[len(b.document.text) :])
        elif b.complete_state is None:
            b.start_completion(select_first=True)
        else:
            b.complete_next()

    @kb.add("enter", eager=True)
    def _(event) -> None:  # pragma: no cover - integration path
        b = event.app.current_buffer
        cs = b.complete_state
        if cs is not None and cs.current_completion is not None:
            b.apply_completion(cs.current_completion)
        else:
            cand = _best_prefix_match(b.document.text)
            if cand:
                b.insert_text(cand[len(b.document.text) :])
        b.validate_and_handle()

    sess = _session_for(session, kb)
    result = sess.prompt(
        message=message,
        completer=WordCompleter(words, ignore_case=True, match_middle=True, sentence=True),
        default=default,
        key_bindings=kb,
        auto_suggest=_PrefixSuggest(names, allow_create),
        style=Style.from_dict({"auto-suggestion": "fg:#888888"}),
    )
    if result is None:
        return None
    text = result.strip() or default
    if allow_create and text == CREATE_SENTINEL:
        return CreateCategoryRequest("")
    chosen = by_lower.get(text.lower())
    if chosen is not None:
        return chosen
    return CreateCategoryRequest(text) if allow_create else None


def prompt_new_category_name(
    *,
    initial: str = "",
    session: PromptSession | None = None,
    message: str = "New category name (Enter to save • Esc or Ctrl+C to cancel): ",
) -> str | None:
    """Collect a new category name with inline validation; ``None`` on cancel."""

    kb = _cancel_bindings()

    class _V(Validator):
        def validate(self, document) -> None:
            v = _validate_name(document.text)
            if not v.ok:
                raise ValidationError(message=v.reason or "Invalid name")

    sess = _session_for(session, kb)
    return sess.prompt(
        message,
        default=initial,
        validator=_V(),
        validate_while_typing=False,
        key_bindings=kb,
    )


# ----------------------------------------------------------------------------
# Merge target picker
# ----------------------------------------------------------------------------


def select_merge_target(
    options: Sequence[tuple[str, str]],
    *,
    message: str = "Merge into # (empty or Esc to cancel): ",
    session: PromptSession | None = None,
) -> str | None:
    """Pick one of ``options`` (``(key, label)`` pairs) by its 1-based number.

    Returns the chosen key. An empty answer, Esc, or Ctrl+C returns ``None``
    and the caller must leave its state untouched.
    """

    if not options:
        return None
    numbers = [str(i) for i in range(1, len(options) + 1)]
    allowed = set(numbers)

    class _NumberValidator(Validator):
        def validate(self, document) -> None:
            text = document.text.strip()
            if text and text not in allowed:
                raise ValidationError(message=f"Enter a number from 1 to {len(options)}.")

    kb = _cancel_bindings()
    sess = _session_for(session, kb)
    prompt_kwargs: dict[str, Any] = {
        "message": message,
        "completer": WordCompleter(numbers, sentence=True),
        "validator": _NumberValidator(),
        "validate_while_typing": False,
        "key_bindings": kb,
    }
    result = sess.prompt(**prompt_kwargs)
    if result is None or not result.strip():
        return None
    return options[int(result.strip()) - 1][0]


__all__ = [
    "CREATE_SENTINEL",
    "CreateCategoryRequest",
    "select_category",
    "prompt_new_category_name",
    "select_merge_target",
]
