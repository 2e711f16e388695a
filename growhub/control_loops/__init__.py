"""
Control Loops Package
=====================

    Bus telemetry ──► Shared state ──► DecisionController tick (every 5 s)
                                            │
                              light policy  │  pump slots
                                            ▼
                               <device>/cmd/<channel>/<on|off>
"""

from growhub.control_loops.decision_controller import COMMAND_PAYLOAD, DecisionController
from growhub.control_loops.light_policy import decide_light_command

__all__ = [
    "COMMAND_PAYLOAD",
    "DecisionController",
    "decide_light_command",
]
