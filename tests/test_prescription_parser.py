"""
Tests for prescription_parser.py.

Covers:
  - parse_fields(): numbered lines, label/value split at the first colon
  - malformed lines preserved verbatim as raw fields
  - extract_medications(): trimming, "" / "N/A" filtering, order and duplicates
  - build_medication_table(): positional correlation with N/A backfill
  - end-to-end example from a realistic AI answer
"""
from __future__ import annotations

import pytest

import prescription_parser as rx
from prescription_parser import ParsedField


# ── parse_fields ──────────────────────────────────────────────────────────────

class TestParseFields:
    def test_numbered_lines_become_structured_fields(self):
        text = "1) Patient Name: Jane Doe\n2) Medication Names: Aspirin"
        fields = rx.parse_fields(text)
        assert fields == [
            ParsedField(ordinal=1, label="Patient Name", value="Jane Doe"),
            ParsedField(ordinal=2, label="Medication Names", value="Aspirin"),
        ]

    def test_n_matching_lines_give_n_fields(self):
        lines = [f"{i}) Label {i}: value {i}" for i in range(1, 13)]
        fields = rx.parse_fields("\n".join(lines))
        assert len(fields) == 12
        assert all(f.is_structured for f in fields)
        assert [f.ordinal for f in fields] == list(range(1, 13))

    def test_value_split_at_first_colon_only(self):
        (f,) = rx.parse_fields("3) Timing: 08:00, 20:00")
        assert f.label == "Timing"
        assert f.value == "08:00, 20:00"

    def test_whitespace_around_parts_is_trimmed(self):
        (f,) = rx.parse_fields("  4)   Dosage Information  :   500mg   ")
        assert f.ordinal == 4
        assert f.label == "Dosage Information"
        assert f.value == "500mg"

    def test_empty_value_allowed(self):
        (f,) = rx.parse_fields("5) Duration:")
        assert f.is_structured
        assert f.value == ""

    def test_blank_lines_are_skipped(self):
        fields = rx.parse_fields("\n\n1) A: b\n   \n2) C: d\n")
        assert len(fields) == 2

    @pytest.mark.parametrize("line", [
        "Patient Name: Jane Doe",            # no ordinal
        "1) Patient Name Jane Doe",          # no colon
        "Here is the analysis of the image",
        "1. Patient Name: Jane Doe",         # dot instead of parenthesis
    ])
    def test_malformed_line_kept_verbatim(self, line):
        (f,) = rx.parse_fields(line)
        assert not f.is_structured
        assert f.raw == line
        assert f.label is None

    def test_mixed_lines_keep_source_order(self):
        text = "Intro line\n1) Medication Names: A\nClosing remark"
        fields = rx.parse_fields(text)
        assert [f.is_structured for f in fields] == [False, True, False]
        assert fields[0].raw == "Intro line"
        assert fields[2].raw == "Closing remark"

    def test_empty_text(self):
        assert rx.parse_fields("") == []


# ── find_field ────────────────────────────────────────────────────────────────

class TestFindField:
    def test_case_insensitive_substring(self):
        fields = rx.parse_fields("1) MEDICATION NAMES: A\n2) dosage info: 1mg")
        assert rx.find_field(fields, "medication").value == "A"
        assert rx.find_field(fields, "Dosage").value == "1mg"

    def test_raw_lines_never_match(self):
        fields = rx.parse_fields("medication: A")
        assert rx.find_field(fields, "medication") is None

    def test_first_match_wins(self):
        fields = rx.parse_fields("1) Medication Names: A\n2) Medication Notes: B")
        assert rx.find_field(fields, "medication").value == "A"


# ── extract_medications ───────────────────────────────────────────────────────

class TestExtractMedications:
    def test_split_and_trim(self):
        fields = rx.parse_fields("2) Medication Names:  Aspirin ,Amoxicillin  ")
        assert rx.extract_medications(fields) == ["Aspirin", "Amoxicillin"]

    def test_filters_empty_and_na_tokens(self):
        fields = rx.parse_fields("2) Medication Names: Aspirin, , N/A, Amoxicillin,")
        assert rx.extract_medications(fields) == ["Aspirin", "Amoxicillin"]

    def test_only_exact_na_is_filtered(self):
        fields = rx.parse_fields("2) Medication Names: n/a, N/A tablets, NA")
        assert rx.extract_medications(fields) == ["n/a", "N/A tablets", "NA"]

    def test_duplicates_and_order_preserved(self):
        fields = rx.parse_fields("2) Medication Names: B, A, B")
        assert rx.extract_medications(fields) == ["B", "A", "B"]

    def test_no_medication_field(self):
        fields = rx.parse_fields("1) Patient Name: Jane")
        assert rx.extract_medications(fields) == []


# ── build_medication_table ────────────────────────────────────────────────────

class TestBuildMedicationTable:
    def test_none_without_medication_label(self):
        fields = rx.parse_fields("1) Patient Name: Jane\n2) Dosage: 5mg")
        assert rx.build_medication_table(fields) is None

    def test_shorter_columns_backfilled(self):
        text = (
            "1) Medication Names: A, B, C\n"
            "2) Dosage Information: 10mg\n"
            "3) Frequency: daily, twice daily\n"
        )
        table = rx.build_medication_table(rx.parse_fields(text))
        assert [r.dosage for r in table] == ["10mg", "N/A", "N/A"]
        assert [r.frequency for r in table] == ["daily", "twice daily", "N/A"]
        assert [r.duration for r in table] == ["N/A", "N/A", "N/A"]
        assert [r.summary for r in table] == ["N/A", "N/A", "N/A"]

    def test_longer_columns_do_not_add_rows(self):
        text = "1) Medication Names: A\n2) Dosage: 1mg, 2mg, 3mg"
        table = rx.build_medication_table(rx.parse_fields(text))
        assert len(table) == 1
        assert table[0].dosage == "1mg"

    def test_empty_positions_become_na(self):
        text = "1) Medication Names: A, B\n2) Duration: , 7 days"
        table = rx.build_medication_table(rx.parse_fields(text))
        assert [r.duration for r in table] == ["N/A", "7 days"]

    def test_medication_field_with_only_na_gives_empty_table(self):
        table = rx.build_medication_table(rx.parse_fields("1) Medication Names: N/A"))
        assert table == []


# ── warnings_of ───────────────────────────────────────────────────────────────

class TestWarnings:
    def test_warning_value_returned(self):
        fields = rx.parse_fields("7) Warnings: Avoid alcohol")
        assert rx.warnings_of(fields) == "Avoid alcohol"

    def test_na_warning_is_none(self):
        assert rx.warnings_of(rx.parse_fields("7) Warnings: N/A")) is None


# ── End-to-end ────────────────────────────────────────────────────────────────

class TestEndToEnd:
    def test_jane_doe_example(self):
        text = (
            "1) Patient Name: Jane Doe\n"
            "2) Medication Names: Aspirin, Amoxicillin\n"
            "3) Dosage Information: 500mg, 250mg"
        )
        fields = rx.parse_fields(text)
        assert rx.extract_medications(fields) == ["Aspirin", "Amoxicillin"]
        table = rx.build_medication_table(fields)
        assert table[0].medication == "Aspirin"
        assert table[0].dosage == "500mg"
        assert table[1].medication == "Amoxicillin"
        assert table[1].dosage == "250mg"

    def test_parsing_is_repeatable(self):
        text = "1) Medication Names: A, B\nfree text"
        assert rx.parse_fields(text) == rx.parse_fields(text)
