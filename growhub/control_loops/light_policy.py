"""
Grow light policy.

Stateless: the desired light command is derived fresh every tick from the
clock, the operating window, the last light reading and the reported relay
state. Returning None means the reported state already matches.
"""

from __future__ import annotations

from datetime import datetime

from growhub.domain.control import ControllerOptions
from growhub.enums.device import RelayCommand, RelayState


def decide_light_command(
    now: datetime,
    options: ControllerOptions,
    light_intensity: float | None,
    reported: RelayState | None,
) -> RelayCommand | None:
    if not options.in_light_window(now.time()):
        # Never leave the light on past the window
        return RelayCommand.OFF if reported is RelayState.ON else None

    if light_intensity is None:
        return None
    if light_intensity >= options.light_intensity_threshold and reported is RelayState.ON:
        return RelayCommand.OFF
    if light_intensity < options.light_intensity_threshold and reported is RelayState.OFF:
        return RelayCommand.ON
    return None
