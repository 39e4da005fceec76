"""
settings.py - Explicit simulation configuration

One SimulationConfig is passed to TopologyBuilder and ScenarioRunner. It
carries the per-kind link defaults that simulator scripts would otherwise set
as process-wide attribute defaults before creating nodes.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from netscen.topology.model import LINK_OPTIONS, LinkKind


@dataclass
class LinkDefaults:
    """Defaults applied to links of one kind when a value is omitted."""
    data_rate_bps: int
    delay_s: float
    options: Dict[str, Any] = field(default_factory=dict)


def _default_link_defaults() -> Dict[LinkKind, LinkDefaults]:
    return {
        LinkKind.POINT_TO_POINT: LinkDefaults(data_rate_bps=5_000_000, delay_s=0.002),
        LinkKind.SHARED_MEDIUM: LinkDefaults(data_rate_bps=100_000_000, delay_s=6560e-9),
        LinkKind.WIRELESS: LinkDefaults(data_rate_bps=54_000_000, delay_s=0.0,
                                        options={'ssid': 'ns-3-ssid'}),
    }


@dataclass
class TraceConfig:
    """
    Output sinks requested from the kernel.

    Attributes:
        ascii_path: Packet/event trace file (None = disabled)
        animation_path: Position animation file (None = disabled)
        pcap_prefix: Per-device capture file prefix (None = disabled)
    """
    ascii_path: Optional[str] = None
    animation_path: Optional[str] = None
    pcap_prefix: Optional[str] = None


@dataclass
class SimulationConfig:
    """
    Simulation-wide configuration.

    Attributes:
        stop_time_s: Simulation end; no event at or after it is effective
        seed: Random seed handed to the kernel
        link_defaults: Per-kind LinkDefaults
        traces: Requested trace sinks
    """
    stop_time_s: float = 10.0
    seed: int = 1
    link_defaults: Dict[LinkKind, LinkDefaults] = field(default_factory=_default_link_defaults)
    traces: TraceConfig = field(default_factory=TraceConfig)

    def __post_init__(self):
        """Validate configuration."""
        if not math.isfinite(self.stop_time_s) or self.stop_time_s <= 0:
            raise ValueError(f"stop_time_s must be positive and finite, got {self.stop_time_s}")

        # Fill kinds the caller left out
        merged = _default_link_defaults()
        for kind, defaults in self.link_defaults.items():
            merged[LinkKind(kind)] = defaults
        self.link_defaults = merged

        for kind, defaults in self.link_defaults.items():
            if defaults.data_rate_bps <= 0:
                raise ValueError(f"{kind.value}: default data rate must be positive, got {defaults.data_rate_bps}")
            if defaults.delay_s < 0:
                raise ValueError(f"{kind.value}: default delay must be non-negative, got {defaults.delay_s}")
            unknown = set(defaults.options) - LINK_OPTIONS[kind]
            if unknown:
                raise ValueError(f"{kind.value}: unrecognized default option(s) {sorted(unknown)}")

    def defaults_for(self, kind: LinkKind) -> LinkDefaults:
        return self.link_defaults[LinkKind(kind)]
