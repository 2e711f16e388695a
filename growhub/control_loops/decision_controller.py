"""
DecisionController: the hub's periodic decide-and-actuate loop.

Every tick reads one snapshot of the shared state, evaluates the light policy
and the pump slots, and publishes only the commands needed to move the
reported relay states towards the desired ones. The controller never writes
the shared state; relay boards report their new state back over the bus and a
later tick sees it.

Ticks are mutually exclusive. A fire that arrives while a tick is still
running is dropped, not queued.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Protocol

from growhub.control_loops.light_policy import decide_light_command
from growhub.domain.control import ControllerOptions, ControllerStats
from growhub.domain.exceptions import PublishFailure, StoreUnavailable
from growhub.domain.pump_slot import PumpSlot
from growhub.domain.relays import RelayMap
from growhub.domain.snapshot import HubSnapshot
from growhub.enums.device import RelayCommand, RelayState
from growhub.utils.time import local_now
from growhub.workers.interval_timer import IntervalTimer

if TYPE_CHECKING:
    from infrastructure.logging.audit import AuditLogger

logger = logging.getLogger(__name__)

# A command is an event, not a data carrier
COMMAND_PAYLOAD = "{}"


class SnapshotReader(Protocol):
    def read_snapshot(self) -> HubSnapshot: ...


class CommandPublisher(Protocol):
    def publish(self, topic: str, payload: Any) -> None: ...


class DecisionController:
    """
    Decides grow light and pump relay commands on a fixed tick.
    """

    def __init__(
        self,
        store: SnapshotReader,
        bus: CommandPublisher,
        relay_map: RelayMap,
        options: ControllerOptions | None = None,
        *,
        clock: Callable[[], datetime] = local_now,
        audit_logger: "AuditLogger | None" = None,
    ) -> None:
        """
        Args:
            store: Shared state accessor (read_snapshot)
            bus: Command publisher (publish(topic, payload), raises PublishFailure)
            relay_map: Role -> relay board channel bindings
            options: Thresholds, windows and schedules (defaults if omitted)
            clock: Wall-clock source for schedules
            audit_logger: Optional audit trail for issued commands
        """
        self.store = store
        self.bus = bus
        self.relay_map = relay_map
        self.options = options or ControllerOptions()
        self._clock = clock
        self.audit_logger = audit_logger

        # Fail at construction, not on the first tick
        self.relay_map.binding(self.options.light_role)
        self.relay_map.binding(self.options.pump_role)

        self.slots: list[PumpSlot] = [
            PumpSlot(
                name=f"pump_slot_{index}",
                relay_role=self.options.pump_role,
                schedule=schedule,
                duration=self.options.pump_duration,
            )
            for index, schedule in enumerate(self.options.pump_schedules, start=1)
        ]
        self._slots_by_role: dict[str, list[PumpSlot]] = defaultdict(list)
        for slot in self.slots:
            self._slots_by_role[slot.relay_role].append(slot)

        self._tick_guard = threading.Lock()
        self._timer: IntervalTimer | None = None
        self.stats = ControllerStats()

        logger.info(
            "DecisionController initialized (light %s-%s threshold=%s, pump at %s for %s)",
            self.options.light_window_start.strftime("%H:%M"),
            self.options.light_window_stop.strftime("%H:%M"),
            self.options.light_intensity_threshold,
            ", ".join(str(slot.schedule) for slot in self.slots),
            self.options.pump_duration,
        )

    # --- Lifecycle ------------------------------------------------------------
    @property
    def running(self) -> bool:
        return self._timer is not None and self._timer.running

    def start(self) -> None:
        if self.running:
            logger.warning("DecisionController already running")
            return
        self._timer = IntervalTimer(self.options.tick_interval_seconds, self.tick, name="DecisionController")
        self._timer.start()

    def stop(self) -> None:
        """Cancel future ticks; a tick in progress finishes normally."""
        if self._timer is not None:
            self._timer.stop()
            self._timer = None

    # --- Tick -----------------------------------------------------------------
    def tick(self, now: datetime | None = None) -> bool:
        """
        Run one decision cycle.

        Returns False when the tick was skipped because another is in flight.
        Never raises.
        """
        if not self._tick_guard.acquire(blocking=False):
            self.stats.ticks_skipped += 1
            logger.warning("Control loop is already running, skipping this interval.")
            return False

        try:
            self._run_tick(now or self._clock())
        except StoreUnavailable as e:
            self.stats.ticks_failed += 1
            self.stats.last_error = str(e)
            logger.error("Control loop aborted, state unavailable: %s", e)
        except Exception as e:
            self.stats.ticks_failed += 1
            self.stats.last_error = str(e)
            logger.error("Error in control loop: %s", e, exc_info=True)
        finally:
            self._tick_guard.release()
        return True

    def _run_tick(self, now: datetime) -> None:
        snapshot = self.store.read_snapshot()
        self.stats.ticks_run += 1
        self.stats.last_tick_at = now
        logger.debug("Control tick at %s", now.isoformat(timespec="seconds"))

        self._evaluate_light(now, snapshot)
        self._evaluate_pumps(now, snapshot)

    # --- Light ----------------------------------------------------------------
    def _evaluate_light(self, now: datetime, snapshot: HubSnapshot) -> None:
        role = self.options.light_role
        command = decide_light_command(now, self.options, snapshot.light_intensity, snapshot.relay_state(role))
        if command is None:
            return
        if self.options.in_light_window(now.time()):
            reason = f"intensity {snapshot.light_intensity} vs threshold {self.options.light_intensity_threshold}"
        else:
            reason = "outside operating window"
        self._send(role, command, reason)

    # --- Pump -----------------------------------------------------------------
    def _evaluate_pumps(self, now: datetime, snapshot: HubSnapshot) -> None:
        for role, slots in self._slots_by_role.items():
            reported = snapshot.relay_state(role)
            sent = False

            for slot in slots:
                if slot.should_start(now):
                    until = slot.start(now)
                    logger.info("Pump %s started, active until %s", slot.name, until.isoformat(timespec="seconds"))
                    if reported is RelayState.OFF and not sent:
                        sent = True
                        self._send(role, RelayCommand.ON, f"{slot.name} scheduled at {slot.schedule}")

            stopped = []
            for slot in slots:
                if slot.should_stop(now):
                    slot.stop()
                    stopped.append(slot.name)
            if stopped:
                still_running = [slot.name for slot in slots if slot.is_running]
                if still_running:
                    logger.info("Pump %s finished; relay %s held for %s", ", ".join(stopped), role, ", ".join(still_running))
                else:
                    logger.info("Pump %s finished", ", ".join(stopped))
                    if reported is RelayState.ON and not sent:
                        sent = True
                        self._send(role, RelayCommand.OFF, "duration elapsed")

    # --- Actuation ------------------------------------------------------------
    def _send(self, role: str, command: RelayCommand, reason: str) -> bool:
        binding = self.relay_map.binding(role)
        topic = binding.command_topic(command)
        logger.info("Turning %s the %s (%s/%s): %s", command.value, role, binding.device, binding.channel, reason)
        try:
            self.bus.publish(topic, COMMAND_PAYLOAD)
        except PublishFailure as e:
            self.stats.publish_failures += 1
            self.stats.last_error = str(e)
            logger.error("Failed to publish %s for %s: %s", topic, role, e)
            self._audit(role, command, topic, "failed", reason=reason, error=str(e))
            return False

        self.stats.record_command(topic)
        self._audit(role, command, topic, "published", reason=reason)
        return True

    def _audit(self, role: str, command: RelayCommand, topic: str, outcome: str, **metadata: Any) -> None:
        if self.audit_logger is None:
            return
        self.audit_logger.log_event(
            actor="decision_controller",
            action=f"relay_{command.value}",
            resource=role,
            outcome=outcome,
            topic=topic,
            **metadata,
        )

    # --- Status ---------------------------------------------------------------
    def slot_status(self) -> list[dict[str, Any]]:
        return [slot.to_dict() for slot in self.slots]

    def status(self) -> dict[str, Any]:
        return {
            "running": self.running,
            "stats": self.stats.to_dict(),
            "pump_slots": self.slot_status(),
        }
