"""Prompt construction for the OpenAI-backed collaborators.

This module builds:
- The system instructions and user content for extracting transactions from
  free text or a receipt/statement image.
- The strict ``response_format`` (JSON Schema) object for the OpenAI
  Responses API.
- The short prompt for the monthly spending insight.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from datetime import date
from decimal import Decimal

from openai.types.responses.response_format_text_json_schema_config_param import (
    ResponseFormatTextJSONSchemaConfigParam,
)


def build_parse_instructions(category_names: Sequence[str]) -> str:
    """Return concise system instructions for transaction extraction.

    The model must return positive amounts, pick a category suggestion from the
    provided names, and output JSON only per the schema.
    """

    names = ", ".join(category_names) if category_names else "Other"
    return (
        "You are a financial assistant that extracts payment transactions from what the "
        "user provides. Report every transaction you can find. Amounts are absolute positive "
        f"numbers. Suggest one category per transaction from: {names}. Use YYYY-MM-DD for "
        "dates, or null when no date is visible. Output JSON only that conforms to the "
        "specified schema."
    )


def build_text_content(text: str, *, today: date) -> str:
    return (
        f"Current date: {today.isoformat()}\n"
        "Extract the transactions from the text between the markers.\n"
        "BEGIN_TEXT\n"
        f"{text}\n"
        "END_TEXT"
    )


def build_image_content(data_url: str, *, today: date) -> list[dict[str, object]]:
    """Return a Responses API ``input`` list carrying the image and the task."""

    return [
        {
            "role": "user",
            "content": [
                {"type": "input_image", "image_url": data_url},
                {
                    "type": "input_text",
                    "text": (
                        f"Current date: {today.isoformat()}\n"
                        "Analyze this bill, receipt or payment screenshot and extract all "
                        "transactions."
                    ),
                },
            ],
        }
    ]


def build_response_format() -> ResponseFormatTextJSONSchemaConfigParam:
    """Return the strict JSON Schema response_format object.

    Schema shape:
    {
      "transactions": [
        {"amount": number, "merchant": string,
         "date": string|null, "category_suggestion": string|null}
      ]
    }
    """

    result: ResponseFormatTextJSONSchemaConfigParam = {
        "type": "json_schema",
        "name": "parsed_transactions",
        "schema": {
            "type": "object",
            "properties": {
                "transactions": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "amount": {"type": "number"},
                            "merchant": {"type": "string"},
                            "date": {"type": ["string", "null"]},
                            "category_suggestion": {"type": ["string", "null"]},
                        },
                        "required": ["amount", "merchant", "date", "category_suggestion"],
                        "additionalProperties": False,
                    },
                }
            },
            "required": ["transactions"],
            "additionalProperties": False,
        },
        "strict": True,
    }
    return result


def build_insight_prompt(total: Decimal, breakdown: Mapping[str, Decimal]) -> str:
    rows = [{"name": name, "value": float(value)} for name, value in breakdown.items()]
    return (
        f"Analyze this month's spending. Total: {total}. "
        f"Breakdown by category: {json.dumps(rows, ensure_ascii=False)}. "
        "Reply with one short, encouraging sentence of at most 20 words."
    )


__all__ = [
    "build_parse_instructions",
    "build_text_content",
    "build_image_content",
    "build_response_format",
    "build_insight_prompt",
]
