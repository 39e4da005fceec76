"""
metrics.py - Kernel run metrics

Simple counters of what the kernel executed during one run, plus the
time-ordered action log.

DESIGN PHILOSOPHY:
- Simple counters, no derived statistics
- Easy to serialize to CSV
"""

import csv
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import List


@dataclass
class ActionRecord:
    """One executed action."""
    time_s: float
    action: str
    target: str


@dataclass
class KernelMetrics:
    """
    Counters for one kernel run.

    Used by Kernel implementations to report what actually fired.
    """

    events_fired: int = 0
    endpoints_started: int = 0
    endpoints_stopped: int = 0
    interfaces_down: int = 0
    interfaces_up: int = 0
    actions: List[ActionRecord] = field(default_factory=list)

    def record(self, time_s: float, action: str, target: str):
        """Record an executed action and bump its counter."""
        self.events_fired += 1
        self.actions.append(ActionRecord(time_s=time_s, action=action, target=target))

        if action == "start_endpoint":
            self.endpoints_started += 1
        elif action == "stop_endpoint":
            self.endpoints_stopped += 1
        elif action == "interface_down":
            self.interfaces_down += 1
        elif action == "interface_up":
            self.interfaces_up += 1

    def summary(self) -> dict:
        """Counters only, without the action log."""
        data = asdict(self)
        data.pop('actions')
        return data

    def export_csv(self, path: str) -> str:
        """
        Export the action log to CSV.

        Args:
            path: Output file

        Returns:
            Path to created CSV file
        """
        output_path = Path(path)
        with open(output_path, 'w', newline='') as f:
            writer = csv.DictWriter(f, fieldnames=['time_s', 'action', 'target'])
            writer.writeheader()
            for record in self.actions:
                writer.writerow(asdict(record))
        return str(output_path)

    def reset(self):
        """Reset all metrics to initial state."""
        self.events_fired = 0
        self.endpoints_started = 0
        self.endpoints_stopped = 0
        self.interfaces_down = 0
        self.interfaces_up = 0
        self.actions = []
