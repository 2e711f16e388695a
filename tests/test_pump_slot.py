from datetime import date, datetime, timedelta

import pytest

from growhub.domain.pump_slot import PumpSchedule, PumpSlot, SlotState


def make_slot(hour=9, minute=0, minutes=10):
    return PumpSlot(
        name="pump_slot_1",
        relay_role="pump",
        schedule=PumpSchedule(hour, minute),
        duration=timedelta(minutes=minutes),
    )


def test_start_window_is_the_start_minute():
    slot = make_slot()

    assert not slot.in_start_window(datetime(2024, 5, 1, 8, 59, 59))
    assert slot.in_start_window(datetime(2024, 5, 1, 9, 0, 0))
    assert slot.in_start_window(datetime(2024, 5, 1, 9, 0, 59, 999999))
    assert not slot.in_start_window(datetime(2024, 5, 1, 9, 1, 0))


def test_start_and_stop_transitions():
    slot = make_slot()
    now = datetime(2024, 5, 1, 9, 0, 2)

    assert slot.state is SlotState.IDLE
    assert slot.should_start(now)
    until = slot.start(now)

    assert until == datetime(2024, 5, 1, 9, 10, 2)
    assert slot.state is SlotState.RUNNING
    assert slot.last_started_on == date(2024, 5, 1)
    assert not slot.should_stop(datetime(2024, 5, 1, 9, 10, 1))
    assert slot.should_stop(until)

    slot.stop()
    assert slot.state is SlotState.IDLE
    assert slot.active_until is None


def test_running_slot_does_not_restart():
    slot = make_slot()
    slot.start(datetime(2024, 5, 1, 9, 0, 0))

    assert not slot.should_start(datetime(2024, 5, 1, 9, 0, 30))


def test_slot_does_not_restart_same_day_after_short_run():
    slot = make_slot(minutes=0.25)
    slot.start(datetime(2024, 5, 1, 9, 0, 0))
    slot.stop()

    assert not slot.should_start(datetime(2024, 5, 1, 9, 0, 30))
    assert slot.should_start(datetime(2024, 5, 2, 9, 0, 30))


def test_to_dict():
    slot = make_slot(15, 0)
    slot.start(datetime(2024, 5, 1, 15, 0, 0))

    data = slot.to_dict()

    assert data["start"] == "15:00"
    assert data["state"] == "running"
    assert data["duration_seconds"] == 600
    assert data["active_until"] == "2024-05-01T15:10:00"


@pytest.mark.parametrize("hour, minute", [(24, 0), (-1, 0), (9, 60)])
def test_invalid_schedule_rejected(hour, minute):
    with pytest.raises(ValueError):
        PumpSchedule(hour, minute)
