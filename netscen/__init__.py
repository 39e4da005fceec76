"""
netscen - Timed network scenarios for discrete-event simulation

Describe a topology and a schedule of timed events, validate them, and hand
them to a simulation kernel.
"""

from netscen.errors import (
    AddressConflict,
    InvalidTopology,
    KernelError,
    NonMonotonicTime,
    RegistrationError,
    ScenarioError,
    ScheduleConflict,
    UnknownTarget,
)
from netscen.topology import TopologyBuilder, LinkKind, AppKind
from netscen.schedule import ScenarioSchedule, EventAction
from netscen.harness import ScenarioRunner, RunResult

__version__ = "0.1.0"

__all__ = [
    'AddressConflict',
    'AppKind',
    'EventAction',
    'InvalidTopology',
    'KernelError',
    'LinkKind',
    'NonMonotonicTime',
    'RegistrationError',
    'RunResult',
    'ScenarioError',
    'ScenarioRunner',
    'ScenarioSchedule',
    'ScheduleConflict',
    'TopologyBuilder',
    'UnknownTarget',
]
