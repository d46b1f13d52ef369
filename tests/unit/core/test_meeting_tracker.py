"""Unit tests for the meeting countdown engine."""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from statuslight.src.core.meeting_tracker import (
    MeetingCountdownEngine,
    MeetingTrackerConfig,
    blended_color,
    compute_tracker_state,
    next_upcoming_event,
    strip_colors,
)
from statuslight.src.models import BusyStatus, RGBColor
from tests.conftest import make_event

IDLE = RGBColor(r=0, g=255, b=0)
MEETING = RGBColor(r=255, g=0, b=0)


@pytest.fixture
def tracker_config():
    return MeetingTrackerConfig(
        enabled=True,
        countdown_minutes=15,
        idle_color=IDLE,
        meeting_color=MEETING,
        assigned_device_ids={"dev-1"},
    )


class TestMeetingTrackerConfig:
    def test_defaults(self):
        config = MeetingTrackerConfig()

        assert config.enabled is False
        assert config.countdown_minutes == 15
        assert config.idle_color == IDLE
        assert config.meeting_color == MEETING
        assert config.assigned_device_ids == set()

    @pytest.mark.parametrize("minutes", [0, 241])
    def test_countdown_window_bounds(self, minutes):
        with pytest.raises(ValidationError):
            MeetingTrackerConfig(countdown_minutes=minutes)

    def test_device_ids_are_strings(self):
        config = MeetingTrackerConfig(assigned_device_ids=[12345, "abc"])

        assert config.assigned_device_ids == {"12345", "abc"}


class TestComputeTrackerState:
    def test_no_events_is_idle(self, tracker_config, now):
        state = compute_tracker_state([], tracker_config, now)

        assert state.active is False
        assert state.progress == 0.0
        assert state.next_event is None

    def test_half_way_through_window(self, tracker_config, now):
        """7.5 minutes before start of a 15 minute window -> progress 0.5."""
        event = make_event(7.5)

        state = compute_tracker_state([event], tracker_config, now)

        assert state.active is True
        assert state.progress == pytest.approx(0.5)
        assert state.minutes_remaining == pytest.approx(7.5)
        assert state.next_event == event

    def test_outside_window_is_inactive(self, tracker_config, now):
        state = compute_tracker_state([make_event(30)], tracker_config, now)

        assert state.active is False
        assert state.progress == 0.0
        assert state.minutes_remaining == pytest.approx(30)

    def test_window_boundary_is_active(self, tracker_config, now):
        state = compute_tracker_state([make_event(15)], tracker_config, now)

        assert state.active is True
        assert state.progress == pytest.approx(0.0)

    def test_in_progress_events_are_ignored(self, tracker_config, now):
        """Only events starting strictly after now are considered."""
        running = make_event(-5, event_id="running")
        later = make_event(10, event_id="later")

        state = compute_tracker_state([running, later], tracker_config, now)

        assert state.next_event.id == "later"

    def test_busy_status_does_not_matter(self, tracker_config, now):
        free = make_event(3, show_as=BusyStatus.FREE)

        state = compute_tracker_state([free], tracker_config, now)

        assert state.active is True

    def test_progress_stays_in_unit_interval(self, tracker_config, now):
        for minutes in (0.01, 1, 5, 14.99, 15):
            state = compute_tracker_state([make_event(minutes)], tracker_config, now)
            assert 0.0 <= state.progress <= 1.0

    def test_progress_never_decreases_toward_start(self, tracker_config, now):
        # Arrange
        event = make_event(15, now=now)
        instants = [now + timedelta(seconds=s) for s in range(0, 900, 30)]
        instants.append(now + timedelta(seconds=899.9))

        # Act
        progress = [
            compute_tracker_state([event], tracker_config, instant).progress
            for instant in instants
        ]

        # Assert
        assert progress == sorted(progress)
        assert progress[0] == pytest.approx(0.0)
        assert progress[-1] == pytest.approx(1.0, abs=1e-3)


class TestColors:
    def test_blend_half_way(self, tracker_config, now):
        state = compute_tracker_state([make_event(7.5)], tracker_config, now)

        color = blended_color(tracker_config, state)

        assert color.r in (127, 128)
        assert color.g in (127, 128)
        assert color.b == 0

    def test_disabled_tracker_is_idle(self, tracker_config, now):
        disabled = tracker_config.model_copy(update={"enabled": False})
        state = compute_tracker_state([make_event(1)], disabled, now)

        assert blended_color(disabled, state) == IDLE

    def test_strip_fills_from_the_right(self, tracker_config, now):
        state = compute_tracker_state([make_event(7.5)], tracker_config, now)

        zones = strip_colors(tracker_config, state, 10)

        assert zones == [IDLE] * 5 + [MEETING] * 5

    def test_strip_rounds_meeting_zones_down(self, tracker_config, now):
        # progress = 1 - 6/15 = 0.6 -> floor(4 * 0.6) = 2
        state = compute_tracker_state([make_event(6)], tracker_config, now)

        zones = strip_colors(tracker_config, state, 4)

        assert zones == [IDLE, IDLE, MEETING, MEETING]

    def test_strip_empty_for_no_zones(self, tracker_config, now):
        state = compute_tracker_state([make_event(1)], tracker_config, now)

        assert strip_colors(tracker_config, state, 0) == []


class TestMeetingCountdownEngine:
    def test_recalculate_uses_event_snapshot(self, tracker_config, now):
        engine = MeetingCountdownEngine(tracker_config)
        engine.update_events([make_event(7.5)])

        state = engine.recalculate(now)

        assert state.active is True
        assert engine.state == state

    def test_unassigned_device_gets_idle(self, tracker_config, now):
        engine = MeetingCountdownEngine(tracker_config)
        engine.update_events([make_event(1)])
        engine.recalculate(now)

        assert engine.single_device_color("someone-else") == IDLE
        assert engine.single_device_color("dev-1") != IDLE
        assert engine.strip_colors(4, "someone-else") == [IDLE] * 4

    def test_next_upcoming_event_is_earliest(self, now):
        events = [make_event(20, event_id="b"), make_event(5, event_id="a")]

        assert next_upcoming_event(events, now).id == "a"
