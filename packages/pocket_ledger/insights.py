"""One-sentence monthly spending insight from the model, with a static fallback."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date

from openai import OpenAI

from . import prompting
from .logging_setup import get_logger
from .models import ZERO, Category, Transaction
from .parsing import extract_response_text, model_name
from .stats import View, summarize

FALLBACK_INSIGHT = "Your spending log is looking great. Keep it up!"

_logger = get_logger("pocket_ledger.insights")


def _create_client() -> OpenAI:
    return OpenAI()


def monthly_insight(
    transactions: Iterable[Transaction],
    categories: Sequence[Category],
    today: date | None = None,
) -> str | None:
    """Return an encouraging sentence about the current month's expenses.

    ``None`` when the month has no expenses. Any failure talking to the model
    yields :data:`FALLBACK_INSIGHT` instead of an error.
    """

    summary = summarize(transactions, categories, today or date.today(), View.MONTH)
    if summary.expense_total <= ZERO:
        return None
    breakdown = {s.name: s.value for s in summary.breakdown}
    prompt = prompting.build_insight_prompt(summary.expense_total, breakdown)
    try:
        resp = _create_client().responses.create(model=model_name(), input=prompt)
        text = extract_response_text(resp).strip()
    except Exception as e:  # noqa: BLE001 - any model failure degrades to the fallback
        _logger.warning("insight:fallback error=%s", e.__class__.__name__)
        return FALLBACK_INSIGHT
    return text or FALLBACK_INSIGHT


__all__ = ["FALLBACK_INSIGHT", "monthly_insight"]
