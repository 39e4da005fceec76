"""
errors.py - Scenario error taxonomy

Every scenario-authoring mistake is detected while building or validating,
before any simulated time elapses. None of these are retried.

Authoring errors derive from ValueError so callers that already catch
ValueError around scenario loading keep working.
"""


class ScenarioError(ValueError):
    """Base class for scenario-authoring errors."""


class InvalidTopology(ScenarioError):
    """Malformed node, link or endpoint reference."""


class AddressConflict(ScenarioError):
    """Requested address block overlaps one already assigned."""


class UnknownTarget(ScenarioError):
    """Event references a node, link or endpoint not in the topology."""


class NonMonotonicTime(ScenarioError):
    """Event time is negative, NaN or infinite."""


class ScheduleConflict(ScenarioError):
    """Schedule is inconsistent (stop-without-start, ambiguous toggle, past end)."""


class RegistrationError(ScenarioError):
    """Scenario element could not be registered with the kernel."""


class KernelError(RuntimeError):
    """Fatal error reported by the simulation kernel while running."""
