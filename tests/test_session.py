"""
Tests for session.py — the per-chat view state transitions.

Covers:
  - selection / rejection / clear keep the right pieces of state
  - analysis lifecycle, including failure keeping the selected image
  - view toggling and close semantics (alternatives dropped, result kept)
  - alternatives lock and late answers after close
  - transitions never mutate the previous state
"""
from __future__ import annotations

import dataclasses

import pytest

import session as vs
from alternatives import MedicationAlternative
from transports.base import TextResult

RESULT = TextResult("1) Medication Names: Aspirin, Amoxicillin")
ALT = MedicationAlternative("Ecosprin", "Brand", "₹5", "USV", "75mg")


@pytest.fixture
def selected(png_image):
    return vs.select_image(vs.ViewState(), png_image)


@pytest.fixture
def shown(selected):
    return vs.analysis_succeeded(vs.start_analysis(selected), RESULT)


class TestSelection:
    def test_select_clears_error(self, png_image):
        state = vs.reject_image(vs.ViewState(), "bad")
        state = vs.select_image(state, png_image)
        assert state.image is png_image
        assert state.error is None

    def test_reject_keeps_selection(self, selected, png_image):
        state = vs.reject_image(selected, "Please select a valid image file")
        assert state.image is png_image
        assert state.error == "Please select a valid image file"

    def test_clear(self, selected):
        state = vs.clear_selection(selected)
        assert state.image is None
        assert not state.can_analyze

    def test_cannot_change_image_while_analyzing(self, selected, png_image):
        busy = vs.start_analysis(selected)
        with pytest.raises(vs.InvalidTransition):
            vs.select_image(busy, png_image)
        with pytest.raises(vs.InvalidTransition):
            vs.clear_selection(busy)


class TestAnalysis:
    def test_can_analyze_needs_image(self):
        assert not vs.ViewState().can_analyze
        with pytest.raises(vs.InvalidTransition):
            vs.start_analysis(vs.ViewState())

    def test_config_error_blocks_analysis(self, selected):
        state = vs.set_config_error(selected, "GEMINI_API_KEY is not set.")
        assert not state.can_analyze
        with pytest.raises(vs.InvalidTransition):
            vs.start_analysis(state)

    def test_start_enters_loading_and_drops_previous_result(self, shown):
        closed = vs.close_result(shown)
        busy = vs.start_analysis(closed)
        assert busy.is_loading
        assert busy.result is None
        assert not busy.can_analyze

    def test_success(self, selected):
        state = vs.analysis_succeeded(vs.start_analysis(selected), RESULT)
        assert state.phase == vs.PHASE_RESULT
        assert state.view == vs.VIEW_PARSED
        assert state.result == RESULT

    def test_timeout_returns_to_interactive_with_selection(self, selected, png_image):
        state = vs.analysis_failed(vs.start_analysis(selected), "Request timed out. Please try again.")
        assert not state.is_loading
        assert state.phase == vs.PHASE_CLOSED
        assert state.image is png_image
        assert state.error.startswith("Request timed out")
        assert state.can_analyze


class TestViews:
    def test_toggle_raw_and_back(self, shown):
        raw = vs.show_view(shown, vs.VIEW_RAW)
        assert raw.view == vs.VIEW_RAW
        assert vs.show_view(raw, vs.VIEW_PARSED).view == vs.VIEW_PARSED

    def test_unknown_view(self, shown):
        with pytest.raises(ValueError):
            vs.show_view(shown, "fancy")

    def test_views_need_a_result(self, selected):
        with pytest.raises(vs.InvalidTransition):
            vs.show_view(selected, vs.VIEW_RAW)

    def test_close_discards_alternatives_keeps_result(self, shown):
        state = vs.start_alternatives(shown, "Aspirin")
        state = vs.alternatives_loaded(state, "Aspirin", [ALT])
        closed = vs.close_result(state)
        assert closed.phase == vs.PHASE_CLOSED
        assert closed.result == RESULT
        assert closed.selected_medication is None
        assert closed.alternatives == ()
        assert closed.alternatives_status == vs.ALT_IDLE

    def test_cannot_close_while_analyzing(self, shown):
        busy = vs.start_analysis(vs.close_result(shown))
        with pytest.raises(vs.InvalidTransition):
            vs.close_result(busy)
        assert busy.is_loading
        assert not busy.can_analyze


class TestAlternatives:
    def test_lookup_lifecycle(self, shown):
        loading = vs.start_alternatives(shown, "Aspirin")
        assert loading.view == vs.VIEW_ALTERNATIVES
        assert loading.alternatives_locked
        loaded = vs.alternatives_loaded(loading, "Aspirin", [ALT])
        assert loaded.alternatives_status == vs.ALT_LOADED
        assert loaded.alternatives == (ALT,)
        assert not loaded.alternatives_locked

    def test_failure(self, shown):
        state = vs.alternatives_failed(vs.start_alternatives(shown, "Aspirin"), "Aspirin", "boom")
        assert state.alternatives_status == vs.ALT_ERROR
        assert state.alternatives_error == "boom"

    def test_second_lookup_locked_out(self, shown):
        loading = vs.start_alternatives(shown, "Aspirin")
        with pytest.raises(vs.InvalidTransition):
            vs.start_alternatives(loading, "Amoxicillin")

    def test_new_lookup_after_load_replaces_previous(self, shown):
        state = vs.alternatives_loaded(vs.start_alternatives(shown, "Aspirin"), "Aspirin", [ALT])
        state = vs.start_alternatives(state, "Amoxicillin")
        assert state.selected_medication == "Amoxicillin"
        assert state.alternatives == ()

    def test_late_answer_after_close_ignored(self, shown):
        closed = vs.close_result(vs.start_alternatives(shown, "Aspirin"))
        assert vs.alternatives_loaded(closed, "Aspirin", [ALT]) is closed
        assert vs.alternatives_failed(closed, "Aspirin", "x") is closed


class TestImmutability:
    def test_transitions_return_new_objects(self, selected):
        before = dataclasses.asdict(selected)
        vs.start_analysis(selected)
        vs.reject_image(selected, "x")
        assert dataclasses.asdict(selected) == before

    def test_state_is_frozen(self, selected):
        with pytest.raises(dataclasses.FrozenInstanceError):
            selected.error = "x"


class TestSessionStore:
    def test_default_state(self):
        assert vs.SessionStore().get(1) == vs.ViewState()

    def test_put_and_get_per_chat(self, selected):
        store = vs.SessionStore()
        store.put(1, selected)
        assert store.get(1) is selected
        assert store.get(2) == vs.ViewState()
