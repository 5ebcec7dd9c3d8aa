"""
session.py — per-chat view state and its transitions.

ViewState is immutable. Each handler in bot.py takes the current state,
applies one transition below and stores the returned state; nothing mutates a
state in place. Phases:

  closed ──start_analysis──▶ analyzing ──succeeded──▶ resultShown
     ▲                           │                        │
     └──────────failed───────────┘◀────────close──────────┘

Inside resultShown the view toggles between parsed / raw / alternatives;
the alternatives view has its own idle → loading → loaded | error status.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Optional

from alternatives import MedicationAlternative
from transports.base import AnalysisResult
from uploads import UploadedImage

PHASE_CLOSED    = "closed"
PHASE_ANALYZING = "analyzing"
PHASE_RESULT    = "resultShown"

VIEW_PARSED       = "parsed"
VIEW_RAW          = "raw"
VIEW_ALTERNATIVES = "alternatives"
VIEWS = (VIEW_PARSED, VIEW_RAW, VIEW_ALTERNATIVES)

ALT_IDLE    = "idle"
ALT_LOADING = "loading"
ALT_LOADED  = "loaded"
ALT_ERROR   = "error"


class InvalidTransition(RuntimeError):
    """Raised when an action is not allowed from the current state."""


@dataclass(frozen=True)
class ViewState:
    phase: str = PHASE_CLOSED
    view: str = VIEW_PARSED
    image: Optional[UploadedImage] = None
    result: Optional[AnalysisResult] = None
    error: Optional[str] = None
    config_error: Optional[str] = None

    selected_medication: Optional[str] = None
    alternatives_status: str = ALT_IDLE
    alternatives: tuple[MedicationAlternative, ...] = field(default_factory=tuple)
    alternatives_error: Optional[str] = None

    @property
    def is_loading(self) -> bool:
        return self.phase == PHASE_ANALYZING

    @property
    def can_analyze(self) -> bool:
        return self.image is not None and self.config_error is None and not self.is_loading

    @property
    def alternatives_locked(self) -> bool:
        return self.alternatives_status == ALT_LOADING


def _without_alternatives(state: ViewState, **changes) -> ViewState:
    return replace(
        state,
        selected_medication=None,
        alternatives_status=ALT_IDLE,
        alternatives=(),
        alternatives_error=None,
        **changes,
    )


# ── File selection ────────────────────────────────────────────────────────────

def select_image(state: ViewState, image: UploadedImage) -> ViewState:
    """Accept a new image: it replaces any previous selection and clears the error."""
    if state.is_loading:
        raise InvalidTransition("Cannot change the image while an analysis is running.")
    return replace(state, image=image, error=None)


def reject_image(state: ViewState, message: str) -> ViewState:
    """Show a validation error; the current selection is left untouched."""
    return replace(state, error=message)


def clear_selection(state: ViewState) -> ViewState:
    if state.is_loading:
        raise InvalidTransition("Cannot clear the image while an analysis is running.")
    return replace(state, image=None, error=None)


def set_config_error(state: ViewState, message: Optional[str]) -> ViewState:
    return replace(state, config_error=message)


# ── Analysis ──────────────────────────────────────────────────────────────────

def start_analysis(state: ViewState) -> ViewState:
    """Discard the previous result and enter the analyzing phase."""
    if not state.can_analyze:
        raise InvalidTransition("Analysis is not available right now.")
    return _without_alternatives(
        state, phase=PHASE_ANALYZING, view=VIEW_PARSED, result=None, error=None,
    )


def analysis_succeeded(state: ViewState, result: AnalysisResult) -> ViewState:
    return replace(state, phase=PHASE_RESULT, view=VIEW_PARSED, result=result, error=None)


def analysis_failed(state: ViewState, message: str) -> ViewState:
    """Back to the interactive state; the selected image is kept for a retry."""
    return replace(state, phase=PHASE_CLOSED, result=None, error=message)


# ── Result view ───────────────────────────────────────────────────────────────

def show_view(state: ViewState, view: str) -> ViewState:
    if view not in VIEWS:
        raise ValueError(f"Unknown view {view!r}")
    if state.phase != PHASE_RESULT:
        raise InvalidTransition("No result is being shown.")
    return replace(state, view=view)


def close_result(state: ViewState) -> ViewState:
    """Close the result; alternatives are discarded, the result is kept."""
    if state.is_loading:
        raise InvalidTransition("Cannot close while an analysis is running.")
    return _without_alternatives(state, phase=PHASE_CLOSED, view=VIEW_PARSED)


# ── Alternatives ──────────────────────────────────────────────────────────────

def start_alternatives(state: ViewState, medication: str) -> ViewState:
    if state.phase != PHASE_RESULT:
        raise InvalidTransition("No result is being shown.")
    if state.alternatives_locked:
        raise InvalidTransition("An alternatives lookup is already running.")
    return replace(
        state,
        view=VIEW_ALTERNATIVES,
        selected_medication=medication,
        alternatives_status=ALT_LOADING,
        alternatives=(),
        alternatives_error=None,
    )


def alternatives_loaded(
    state: ViewState, medication: str, items: list[MedicationAlternative],
) -> ViewState:
    # Ignore late answers for a lookup the user already closed
    if state.selected_medication != medication or state.alternatives_status != ALT_LOADING:
        return state
    return replace(state, alternatives_status=ALT_LOADED, alternatives=tuple(items))


def alternatives_failed(state: ViewState, medication: str, message: str) -> ViewState:
    if state.selected_medication != medication or state.alternatives_status != ALT_LOADING:
        return state
    return replace(state, alternatives_status=ALT_ERROR, alternatives_error=message)


# ── Store ─────────────────────────────────────────────────────────────────────

class SessionStore:
    """In-memory ViewState per chat id. Nothing is persisted."""

    def __init__(self) -> None:
        self._states: dict[int, ViewState] = {}

    def get(self, chat_id: int) -> ViewState:
        return self._states.get(chat_id) or ViewState()

    def put(self, chat_id: int, state: ViewState) -> ViewState:
        self._states[chat_id] = state
        return state

    def clear(self) -> None:
        self._states.clear()
