"""
prescription_parser.py — turns the AI's numbered-list answer into fields.

Line grammar:   <digits> ")" <label> ":" <value>
  e.g.  "2) Medication Names: Aspirin, Amoxicillin"

The label is the text between ")" and the FIRST colon; the value is everything
after it. Lines that don't fit the grammar are kept verbatim as raw fields,
never dropped. Everything here is pure: callers re-parse on every render.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

NA = "N/A"

_LINE_RE = re.compile(r"^\s*(\d+)\)\s*([^:]+?)\s*:\s*(.*?)\s*$")

# Label keywords (case-insensitive substring match)
KW_MEDICATION = "medication"
KW_DOSAGE     = "dosage"
KW_FREQUENCY  = "frequency"
KW_DURATION   = "duration"
KW_SUMMARY    = "summary"
KW_WARNING    = "warning"


@dataclass(frozen=True)
class ParsedField:
    """One line of analysis text: structured (ordinal/label/value) or raw."""
    ordinal: Optional[int] = None
    label: Optional[str]   = None
    value: Optional[str]   = None
    raw: Optional[str]     = None

    @property
    def is_structured(self) -> bool:
        return self.raw is None


@dataclass(frozen=True)
class MedicationRow:
    medication: str
    dosage: str
    frequency: str
    duration: str
    summary: str


def parse_line(line: str) -> ParsedField:
    m = _LINE_RE.match(line)
    if not m:
        return ParsedField(raw=line.rstrip())
    return ParsedField(ordinal=int(m.group(1)), label=m.group(2), value=m.group(3))


def parse_fields(text: str) -> list[ParsedField]:
    """Parse every non-empty line, preserving order."""
    return [parse_line(line) for line in text.splitlines() if line.strip()]


def find_field(fields: list[ParsedField], keyword: str) -> Optional[ParsedField]:
    """First structured field whose label contains keyword (case-insensitive)."""
    kw = keyword.lower()
    for f in fields:
        if f.is_structured and kw in f.label.lower():
            return f
    return None


def split_values(value: Optional[str]) -> list[str]:
    """Comma-split and trim. Empty positions are kept so indexes stay aligned."""
    if value is None:
        return []
    return [token.strip() for token in value.split(",")]


def extract_medications(fields: list[ParsedField]) -> list[str]:
    """
    Ordered medication names from the 'medication' field.
    Drops exactly "" and "N/A" after trimming; duplicates are kept.
    """
    field = find_field(fields, KW_MEDICATION)
    if field is None:
        return []
    return [t for t in split_values(field.value) if t and t != NA]


def _column(fields: list[ParsedField], keyword: str) -> list[str]:
    field = find_field(fields, keyword)
    return split_values(field.value) if field else []


def _at(values: list[str], i: int) -> str:
    if i < len(values) and values[i]:
        return values[i]
    return NA


def build_medication_table(fields: list[ParsedField]) -> Optional[list[MedicationRow]]:
    """
    Correlate the per-medication columns by position.

    Returns None when no label mentions "medication" (caller shows the field
    list instead). Shorter columns are backfilled with "N/A".
    """
    if find_field(fields, KW_MEDICATION) is None:
        return None
    medications = extract_medications(fields)
    dosages     = _column(fields, KW_DOSAGE)
    frequencies = _column(fields, KW_FREQUENCY)
    durations   = _column(fields, KW_DURATION)
    summaries   = _column(fields, KW_SUMMARY)
    return [
        MedicationRow(
            medication=name,
            dosage=_at(dosages, i),
            frequency=_at(frequencies, i),
            duration=_at(durations, i),
            summary=_at(summaries, i),
        )
        for i, name in enumerate(medications)
    ]


def warnings_of(fields: list[ParsedField]) -> Optional[str]:
    field = find_field(fields, KW_WARNING)
    if field is None or not field.value or field.value == NA:
        return None
    return field.value
