"""Turn free text or an image into candidate transactions with the OpenAI API.

Public API
----------
- ``parse_text(text)`` and ``parse_image(data, mime_type)`` return a list of
  :class:`~pocket_ledger.models.ParsedTransaction`. An empty list means the
  model found nothing; the staging layer reports that as "nothing
  recognized".
- ``decode_model_json(text)`` is the tolerant decoder used on model output:
  plain JSON first, then a fenced code block, then the outermost brace span.

Client, transport, and undecodable-output failures raise
:class:`~pocket_ledger.errors.ParseFailure`. Retries are limited to HTTP 429
and 5xx responses.
"""

from __future__ import annotations

import base64
import json
import os
import random
import re
import time
from collections.abc import Mapping, Sequence
from datetime import date
from typing import Any

from openai import OpenAI
from pydantic import ValidationError

from . import prompting
from .errors import ParseFailure
from .logging_setup import get_logger
from .models import ParsedTransaction

_MAX_ATTEMPTS: int = 3
_BACKOFF_SCHEDULE_SEC: tuple[float, ...] = (0.5, 2.0)
_JITTER_PCT: float = 0.20

DEFAULT_MODEL: str = "gpt-5-mini"

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")

_logger = get_logger("pocket_ledger.parsing")


def model_name() -> str:
    return (os.getenv("POCKET_LEDGER_MODEL") or "").strip() or DEFAULT_MODEL


def _create_client() -> OpenAI:
    return OpenAI()


def _is_retryable(exc: BaseException) -> bool:
    sc = getattr(exc, "status_code", None)
    return isinstance(sc, int) and (sc == 429 or 500 <= sc < 600)


def _sleep_backoff(attempt_no: int) -> None:
    base = _BACKOFF_SCHEDULE_SEC[min(attempt_no - 1, len(_BACKOFF_SCHEDULE_SEC) - 1)]
    jitter = base * _JITTER_PCT
    time.sleep(max(0.0, base + random.uniform(-jitter, jitter)))


def extract_response_text(resp: Any) -> str:
    """Prefer ``resp.output_text``; fall back to ``resp.output[0].content[0].text``."""

    text: str | None = getattr(resp, "output_text", None)
    if not text:
        output = getattr(resp, "output", None) or []
        content = getattr(output[0], "content", None) if output else None
        if content:
            txt_obj = getattr(content[0], "text", None)
            if isinstance(txt_obj, str):
                text = txt_obj
            else:
                maybe_val = getattr(txt_obj, "value", None)
                text = maybe_val if isinstance(maybe_val, str) else None
    if not text or not isinstance(text, str):
        raise ParseFailure("Unexpected Responses API shape; unable to locate text output")
    return text


def decode_model_json(text: str) -> Any:
    """Decode JSON that a model may have wrapped in prose or markdown."""

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    m = _FENCE_RE.search(text)
    if m:
        try:
            return json.loads(m.group(1))
        except json.JSONDecodeError:
            pass
    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    end = max(text.rfind("}"), text.rfind("]"))
    if starts and end > min(starts):
        try:
            return json.loads(text[min(starts) : end + 1])
        except json.JSONDecodeError:
            pass
    raise ParseFailure("Could not parse JSON from model output")


def coerce_transactions(decoded: Any) -> list[ParsedTransaction]:
    """Validate decoded output item by item.

    Accepts ``{"transactions": [...]}`` or a bare list. Malformed items and
    zero amounts are dropped; ordering is kept.
    """

    if isinstance(decoded, Mapping):
        raw_items = decoded.get("transactions") or []
    elif isinstance(decoded, list):
        raw_items = decoded
    else:
        raise ParseFailure("Model output is neither an object nor a list")
    if not isinstance(raw_items, list):
        raise ParseFailure("'transactions' is not a list")

    out: list[ParsedTransaction] = []
    dropped = 0
    for raw in raw_items:
        try:
            item = ParsedTransaction.model_validate(raw)
        except ValidationError:
            dropped += 1
            continue
        if item.amount <= 0:
            dropped += 1
            continue
        out.append(item)
    if dropped:
        _logger.info("parse:items_dropped dropped=%d kept=%d", dropped, len(out))
    return out


def _request(
    input_payload: str | list[dict[str, object]],
    *,
    category_names: Sequence[str],
    source: str,
) -> list[ParsedTransaction]:
    client = _create_client()
    model = model_name()
    instructions = prompting.build_parse_instructions(category_names)
    text_cfg = {"format": prompting.build_response_format()}
    attempt = 1
    while True:
        t0 = time.perf_counter()
        try:
            resp = client.responses.create(
                model=model,
                instructions=instructions,
                input=input_payload,
                text=text_cfg,
            )
            items = coerce_transactions(decode_model_json(extract_response_text(resp)))
            dt_ms = (time.perf_counter() - t0) * 1000.0
            _logger.info(
                "parse:%s_done count=%d latency_ms=%.2f", source, len(items), dt_ms
            )
            return items
        except ParseFailure:
            _logger.error("parse:%s_unusable_output attempt=%d", source, attempt)
            raise
        except Exception as e:  # noqa: BLE001 - SDK raises a wide family of errors
            dt_ms = (time.perf_counter() - t0) * 1000.0
            if attempt >= _MAX_ATTEMPTS or not _is_retryable(e):
                _logger.error(
                    "parse:%s_failed_terminal latency_ms=%.2f error=%s attempt=%d",
                    source,
                    dt_ms,
                    e.__class__.__name__,
                    attempt,
                )
                raise ParseFailure(f"AI parsing failed: {e}") from e
            _logger.warning(
                "parse:%s_retry latency_ms=%.2f error=%s attempt=%d",
                source,
                dt_ms,
                e.__class__.__name__,
                attempt,
            )
            _sleep_backoff(attempt)
            attempt += 1


def parse_text(
    text: str,
    *,
    category_names: Sequence[str] = (),
    today: date | None = None,
) -> list[ParsedTransaction]:
    if not text.strip():
        return []
    content = prompting.build_text_content(text, today=today or date.today())
    return _request(content, category_names=category_names, source="text")


def parse_image(
    data: bytes,
    mime_type: str = "image/jpeg",
    *,
    category_names: Sequence[str] = (),
    today: date | None = None,
) -> list[ParsedTransaction]:
    if not data:
        return []
    data_url = f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"
    content = prompting.build_image_content(data_url, today=today or date.today())
    return _request(content, category_names=category_names, source="image")


__all__ = [
    "DEFAULT_MODEL",
    "model_name",
    "extract_response_text",
    "decode_model_json",
    "coerce_transactions",
    "parse_text",
    "parse_image",
]
