"""
style.py — Complete visual style system for the bot.

Design language:
  • Structured cards with consistent emoji icons
  • Unicode box-drawing dividers
  • Clear visual hierarchy: header → body → footer
  • MarkdownV2 throughout

All text that goes into Telegram messages should be formatted through this module.
The result views re-parse the analysis text on every render.
"""
from __future__ import annotations

from typing import Optional

import prescription_parser as rx
from alternatives import MedicationAlternative
from session import (
    ALT_ERROR, ALT_LOADED, ALT_LOADING,
    VIEW_ALTERNATIVES, VIEW_RAW, ViewState,
)
from transports.base import AnalysisResult
from uploads import UploadedImage

MAX_MESSAGE = 4050

# ── Escape ────────────────────────────────────────────────────────────────────

def esc(text: str) -> str:
    """Escape all MarkdownV2 special characters."""
    for ch in r"\_*[]()~`>#+-=|{}.!":
        text = text.replace(ch, f"\\{ch}")
    return text


def esc_code(text: str) -> str:
    """Escape text placed inside a ``` pre block (only \\ and ` are special)."""
    return text.replace("\\", "\\\\").replace("`", "\\`")


def fit(text: str) -> str:
    if len(text) <= MAX_MESSAGE:
        return text
    # A trailing lone backslash would escape the ellipsis
    return text[:MAX_MESSAGE].rstrip("\\") + "\\.\\.\\."


def fmt_size(n_bytes: int) -> str:
    if n_bytes >= 1024 * 1024:
        return f"{n_bytes / (1024 * 1024):.1f} MB"
    if n_bytes >= 1024:
        return f"{n_bytes / 1024:.0f} KB"
    return f"{n_bytes} B"


# ── Visual constants ──────────────────────────────────────────────────────────

DIV   = "━━━━━━━━━━━━━━━━━━━━━━━━━━"    # thick divider
SDIV  = "┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄"    # subtle divider

TYPE_ICON = {"Generic": "💊", "Brand": "🏷️"}


# ══════════════════════════════════════════════════════════════════════════════
# START / HELP
# ══════════════════════════════════════════════════════════════════════════════

def welcome() -> str:
    return (
        f"🩺 *PRESCRIPTION ANALYZER*\n"
        f"{DIV}\n\n"
        f"Send me a photo of a doctor's prescription and I'll read it with AI\\.\n\n"
        f"✨  *What I can do*\n"
        f"▸ Extract medications, dosage, frequency and duration\n"
        f"▸ Show the results as a medication table\n"
        f"▸ Look up cheaper generic or branded alternatives\n\n"
        f"{DIV}\n"
        f"_📸 Just send a photo to get started_"
    )


def help_text(max_bytes: int, formats: str) -> str:
    return (
        f"📖 *HOW TO USE*\n"
        f"{DIV}\n\n"
        f"*1️⃣  Send the prescription*\n"
        f"_As a photo, or as a file for full resolution_\n\n"
        f"*2️⃣  Tap Analyze*\n"
        f"_The AI reads the prescription_\n\n"
        f"*3️⃣  Review the results*\n"
        f"_Switch between the table and the raw answer_\n\n"
        f"*4️⃣  Find alternatives*\n"
        f"_Tap a medication to see substitutes and prices_\n\n"
        f"{DIV}\n"
        f"📎 Accepted: {esc(formats)}   📏 Max {esc(fmt_size(max_bytes))}\n\n"
        f"⚠️ _This is not medical advice\\. Always confirm with your pharmacist\\._\n\n"
        f"_Commands: /start · /help · /clear_"
    )


def config_banner(message: str) -> str:
    return (
        f"⚙️ *Configuration Error*\n"
        f"{DIV}\n\n"
        f"{esc(message)}\n\n"
        f"_Analysis is disabled until this is fixed\\._"
    )


# ══════════════════════════════════════════════════════════════════════════════
# SELECTION / LOADING / ERRORS
# ══════════════════════════════════════════════════════════════════════════════

def selection_card(image: UploadedImage, error: Optional[str] = None) -> str:
    error_line = f"\n\n❌ {esc(error)}" if error else ""
    return (
        f"📄 *Prescription ready*\n"
        f"{SDIV}\n"
        f"🖼️ `{esc(image.mime_type)}`   📏 {esc(fmt_size(image.size))}\n\n"
        f"_Tap Analyze to read it, or send another image to replace it\\._"
        f"{error_line}"
    )


def validation_error(message: str, has_selection: bool = False) -> str:
    keep = "\n_Your previous image is still selected\\._" if has_selection else ""
    return f"❌ {esc(message)}{keep}"


def loading_analysis(transport_name: str) -> str:
    return (
        f"🔍 *Analysing your prescription*\n"
        f"{SDIV}\n"
        f"🤖 {esc(transport_name)}\n\n"
        f"⠋ Reading medications…"
    )


def analysis_error(message: str) -> str:
    return (
        f"❌ *Analysis Failed*\n"
        f"{DIV}\n\n"
        f"{esc(message)}\n\n"
        f"_Your image is still selected\\. Tap Analyze to retry\\._"
    )


def not_an_image() -> str:
    return (
        f"📸 *Send a Prescription Photo*\n"
        f"{SDIV}\n"
        f"I need an image of the prescription to analyse\\.\n"
        f"_Take a clear, well\\-lit picture and send it here\\!_"
    )


def session_expired() -> str:
    return "⚠️ Session expired — please send the prescription again\\."


def error_rate_limited(max_requests: int, window_secs: int) -> str:
    return (
        f"⏱ *Slow Down\\!*\n"
        f"{SDIV}\n"
        f"You can analyse up to *{max_requests} prescriptions* every *{window_secs} seconds*\\.\n\n"
        f"_Please wait a moment before trying again\\._"
    )


def closed_card(has_result: bool) -> str:
    hint = "Tap Show result to reopen it, or send a new image\\." if has_result \
        else "Send a new image to start again\\."
    return f"✅ *Closed*\n{SDIV}\n_{hint}_"


# ══════════════════════════════════════════════════════════════════════════════
# RESULT VIEWS
# ══════════════════════════════════════════════════════════════════════════════

def medication_row(row: rx.MedicationRow, index: int) -> str:
    return (
        f"*{index}\\.  {esc(row.medication)}*\n"
        f"   💉 {esc(row.dosage)}   🕒 {esc(row.frequency)}   📅 {esc(row.duration)}\n"
        f"   📝 _{esc(row.summary)}_"
    )


def field_line(f: rx.ParsedField) -> str:
    if f.is_structured:
        return f"*{f.ordinal}\\. {esc(f.label)}:* {esc(f.value or rx.NA)}"
    return esc(f.raw)


def parsed_view(result: Optional[AnalysisResult]) -> str:
    header = f"📋 *ANALYSIS RESULTS*\n{DIV}\n\n"
    text = result.text if result is not None else None
    if text is None:
        if result is None:
            return header + "_No analysis data available_"
        return header + raw_block(result)

    fields = rx.parse_fields(text)
    if not fields:
        return header + "_No analysis data available_"

    table = rx.build_medication_table(fields)
    if table is None:
        return fit(header + "\n".join(field_line(f) for f in fields))

    patient = rx.find_field(fields, "patient")
    lines = []
    if patient is not None:
        lines.append(f"👤 *{esc(patient.value or rx.NA)}*\n{SDIV}")
    if table:
        lines.append("\n\n".join(medication_row(r, i) for i, r in enumerate(table, 1)))
    else:
        lines.append("_No medications could be read_")
    warning = rx.warnings_of(fields)
    if warning:
        lines.append(f"{SDIV}\n⚠️ *Warnings:* {esc(warning)}")
    lines.append(f"{SDIV}\n_Tap a medication below to find alternatives_")
    return fit(header + "\n".join(lines))


def raw_block(result: AnalysisResult) -> str:
    return f"```json\n{esc_code(result.to_json())}\n```"


def raw_view(result: Optional[AnalysisResult]) -> str:
    header = f"🧾 *RAW RESPONSE*\n{DIV}\n\n"
    if result is None:
        return header + "_No analysis data available_"
    body = raw_block(result)
    if len(header) + len(body) > MAX_MESSAGE:
        # Never cut a pre block in half
        cut = esc_code(result.to_json())[: MAX_MESSAGE - len(header) - 20]
        body = f"```json\n{cut.rstrip(chr(92))}\n```"
    return header + body


def alternative_card(alt: MedicationAlternative, index: int) -> str:
    icon = TYPE_ICON.get(alt.type, "💊")
    return (
        f"*{index}\\.* {icon} *{esc(alt.name)}*  _{esc(alt.type)}_\n"
        f"   💰 {esc(alt.price)}   🏭 {esc(alt.manufacturer)}\n"
        f"   📝 {esc(alt.note)}"
    )


def alternatives_view(state: ViewState) -> str:
    name = esc(state.selected_medication or rx.NA)
    header = f"🔁 *ALTERNATIVES*\n{DIV}\n💊 _{name}_\n{SDIV}\n\n"
    if state.alternatives_status == ALT_LOADING:
        return header + "⠙ Looking up alternatives…"
    if state.alternatives_status == ALT_ERROR:
        return header + f"❌ {esc(state.alternatives_error or 'Lookup failed.')}"
    if state.alternatives_status == ALT_LOADED and not state.alternatives:
        return header + "😔 _No alternatives found_"
    cards = "\n\n".join(alternative_card(a, i) for i, a in enumerate(state.alternatives, 1))
    footer = f"\n{SDIV}\n_Prices are approximate\\. Ask your pharmacist before switching\\._"
    return fit(header + cards + footer)


def result_card(state: ViewState) -> str:
    """Render whichever view of the result is active."""
    if state.view == VIEW_RAW:
        return raw_view(state.result)
    if state.view == VIEW_ALTERNATIVES:
        return alternatives_view(state)
    return parsed_view(state.result)
