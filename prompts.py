"""
Prompts sent to the AI API.

The analysis prompt asks for a numbered "N) Label: Value" list, which is the
format prescription_parser.py understands. Multi-medication fields are
comma-separated in the same order as the medication names so rows can be
correlated by position.
"""
from __future__ import annotations

ANALYSIS_PROMPT = """You are a pharmacist reading a doctor's prescription image.
Extract the details and answer ONLY with the numbered list below, one item per line,
using exactly these labels. Use N/A when something is not readable.

1) Patient Name: <name>
2) Medication Names: <comma-separated medication names>
3) Dosage Information: <comma-separated dosages, same order as the medications>
4) Frequency: <comma-separated frequencies, same order as the medications>
5) Duration: <comma-separated durations, same order as the medications>
6) Summary: <comma-separated one-line purpose of each medication, same order>
7) Warnings: <important warnings or interactions>

Do not add any text before or after the list. Do not use markdown."""


ALTERNATIVES_PROMPT = """You are a pharmaceutical pricing assistant for the {market} market.
List commonly available alternatives to the medication "{medication}" that are sold in {market}.
Include both generic and branded options with the same active ingredient and strength where possible.

Return ONLY a single JSON object, with no markdown code fences and no extra prose, in exactly this shape:
{{
  "alternatives": [
    {{
      "name": "product name",
      "type": "Generic or Brand",
      "price": "approximate retail price in {currency}",
      "manufacturer": "manufacturer name",
      "note": "short note, e.g. strength or pack size"
    }}
  ]
}}

If you know of no alternatives, return {{"alternatives": []}}."""


def build_alternatives_prompt(medication: str, market: str, currency: str) -> str:
    return ALTERNATIVES_PROMPT.format(
        medication=medication.strip(),
        market=market,
        currency=currency,
    )
