"""
schedule.py - ScenarioSchedule

An ordered list of timed events applied to a topology during a run:
endpoint start/stop and link interface up/down.

Design philosophy:
- Events hold handles only; the topology owns the records
- Validate everything before handing events to the kernel; the kernel only
  executes callbacks at given times and never checks scenario semantics
- Ordering is a pure function of (fire_time, insertion order), so expanding
  the same schedule twice yields the same sequence
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, List, Optional, Set, Tuple, Union, TYPE_CHECKING

from netscen.errors import NonMonotonicTime, ScheduleConflict, UnknownTarget
from netscen.topology.model import EndpointHandle, LinkHandle, NodeHandle

# Avoid circular import
if TYPE_CHECKING:
    from netscen.topology.builder import TopologyBuilder

logger = logging.getLogger(__name__)


class EventAction(str, Enum):
    START_ENDPOINT = "start_endpoint"
    STOP_ENDPOINT = "stop_endpoint"
    SET_LINK_INTERFACE_UP = "interface_up"
    SET_LINK_INTERFACE_DOWN = "interface_down"

    @property
    def targets_endpoint(self) -> bool:
        return self in (EventAction.START_ENDPOINT, EventAction.STOP_ENDPOINT)


@dataclass(frozen=True, order=True)
class EventHandle:
    index: int


@dataclass(frozen=True)
class ScheduledEvent:
    """
    A time-stamped action on a topology element.

    Attributes:
        fire_time: Simulation time in seconds
        target: EndpointHandle for start/stop, LinkHandle for up/down
        action: What happens at fire_time
        node: For up/down, restrict the toggle to this member's interface
              (None toggles every interface on the link)
        seq: Insertion order, breaks fire_time ties
    """
    fire_time: float
    target: Union[EndpointHandle, LinkHandle]
    action: EventAction
    node: Optional[NodeHandle] = None
    seq: int = 0

    @property
    def sort_key(self) -> Tuple[float, int]:
        return (self.fire_time, self.seq)

    def __str__(self):
        scope = f"/{self.node}" if self.node is not None else ""
        return f"{self.action.value}({self.target}{scope})@{self.fire_time:g}s"


class OrderedEvents:
    """
    Restartable view of a schedule sorted by (fire_time, insertion order).

    Sorting happens on iteration; every iteration re-emits the same order.
    """

    def __init__(self, events: List[ScheduledEvent]):
        self._events = tuple(events)

    def __iter__(self) -> Iterator[ScheduledEvent]:
        for event in sorted(self._events, key=lambda e: e.sort_key):
            yield event

    def __len__(self):
        return len(self._events)

    def __repr__(self):
        return f"OrderedEvents({[str(e) for e in self]})"


class ScenarioSchedule:
    """
    Timed events for one scenario, bound to the topology they reference.

    Usage:
        schedule = ScenarioSchedule(topology)
        schedule.add_event(1.0, client, EventAction.START_ENDPOINT)
        schedule.add_event(5.0, client, EventAction.STOP_ENDPOINT)
        schedule.validate(topology, simulation_end=6.0)
        for event in schedule.produce_ordered_events():
            ...
    """

    def __init__(self, topology: 'TopologyBuilder'):
        self.topology = topology
        self._events: List[ScheduledEvent] = []

    def __len__(self):
        return len(self._events)

    @property
    def events(self) -> Tuple[ScheduledEvent, ...]:
        """Events in insertion order."""
        return tuple(self._events)

    def add_event(self, fire_time: float, target, action: Union[EventAction, str],
                  node: Optional[NodeHandle] = None) -> EventHandle:
        """
        Record an event.

        Args:
            fire_time: Simulation time in seconds (>= 0, finite)
            target: EndpointHandle (start/stop) or LinkHandle (up/down)
            action: EventAction or its string value
            node: Optional member node for up/down events

        Returns:
            EventHandle (insertion index)

        Raises:
            NonMonotonicTime: If fire_time is negative, NaN or infinite
            UnknownTarget: If the action is unknown, or target/node is not in
                           the topology or does not fit the action
        """
        try:
            action = EventAction(action)
        except ValueError:
            raise UnknownTarget(f"Unknown event action: '{action}'")
        fire_time = _check_time(fire_time)
        _check_target(self.topology, target, action, node)

        seq = len(self._events)
        self._events.append(ScheduledEvent(
            fire_time=fire_time, target=target, action=action, node=node, seq=seq))
        logger.debug("Scheduled %s", self._events[-1])
        return EventHandle(seq)

    def add_endpoint_window(self, endpoint: EndpointHandle, start: float,
                            stop: float) -> Tuple[EventHandle, EventHandle]:
        """Schedule an endpoint lifecycle [start, stop)."""
        start = _check_time(start)
        stop = _check_time(stop)
        if not start < stop:
            raise NonMonotonicTime(f"{endpoint}: start ({start}s) must be before stop ({stop}s)")
        return (self.add_event(start, endpoint, EventAction.START_ENDPOINT),
                self.add_event(stop, endpoint, EventAction.STOP_ENDPOINT))

    def validate(self, topology: 'TopologyBuilder', simulation_end: float):
        """
        Check the schedule against a topology and a simulation end time.

        Events are walked in (fire_time, insertion order).

        Raises:
            UnknownTarget: If an event references something not in topology
            ScheduleConflict: On stop-without-start, ambiguous same-time
                              toggles, repeated interface down, or any event
                              at or after simulation_end
        """
        if not isinstance(simulation_end, (int, float)) or isinstance(simulation_end, bool) \
                or not math.isfinite(simulation_end) or simulation_end <= 0:
            raise NonMonotonicTime(f"Simulation end must be positive and finite, got {simulation_end!r}")

        ordered = list(self.produce_ordered_events())

        for event in ordered:
            _check_target(topology, event.target, event.action, event.node)
            if event.fire_time >= simulation_end:
                raise ScheduleConflict(
                    f"{event} fires at or after simulation end ({simulation_end:g}s) and would never be observed")

        self._check_ambiguous_toggles(ordered)
        self._check_endpoint_lifecycles(ordered)
        self._check_interface_states(topology, ordered)

        logger.info("Schedule validated: %d event(s) before %gs", len(ordered), simulation_end)

    def produce_ordered_events(self) -> OrderedEvents:
        """Events sorted by (fire_time, insertion order)."""
        return OrderedEvents(self._events)

    # ------------------------------------------------------------------
    # Validation passes
    # ------------------------------------------------------------------

    @staticmethod
    def _check_ambiguous_toggles(ordered: List[ScheduledEvent]):
        # (link, time) -> interface scopes toggled at that instant
        seen: Dict[Tuple[LinkHandle, float], Set[Optional[NodeHandle]]] = {}
        for event in ordered:
            if event.action.targets_endpoint:
                continue
            scopes = seen.setdefault((event.target, event.fire_time), set())
            if scopes and (event.node is None or None in scopes or event.node in scopes):
                raise ScheduleConflict(
                    f"{event} collides with another up/down on {event.target} at "
                    f"{event.fire_time:g}s; ordering is ambiguous")
            scopes.add(event.node)

    @staticmethod
    def _check_endpoint_lifecycles(ordered: List[ScheduledEvent]):
        started_at: Dict[EndpointHandle, float] = {}
        for event in ordered:
            if event.action == EventAction.START_ENDPOINT:
                if event.target in started_at:
                    raise ScheduleConflict(f"{event}: endpoint is already running")
                started_at[event.target] = event.fire_time
            elif event.action == EventAction.STOP_ENDPOINT:
                if event.target not in started_at:
                    raise ScheduleConflict(f"{event} has no matching earlier start")
                if started_at[event.target] == event.fire_time:
                    raise ScheduleConflict(f"{event} stops at the same instant it starts")
                del started_at[event.target]

    @staticmethod
    def _check_interface_states(topology: 'TopologyBuilder', ordered: List[ScheduledEvent]):
        # Every interface starts up
        down: Set[Tuple[LinkHandle, NodeHandle]] = set()
        for event in ordered:
            if event.action.targets_endpoint:
                continue
            members = topology.link(event.target).nodes
            scope = [event.node] if event.node is not None else list(members)
            keys = [(event.target, member) for member in scope]

            if event.action == EventAction.SET_LINK_INTERFACE_DOWN:
                already = [str(node) for _, node in keys if (event.target, node) in down]
                if already:
                    raise ScheduleConflict(
                        f"{event}: interface(s) {already} are already down; bring them up first")
                down.update(keys)
            else:
                if not any(key in down for key in keys):
                    logger.debug("%s: interface(s) already up", event)
                down.difference_update(keys)


def _check_time(fire_time) -> float:
    if isinstance(fire_time, bool) or not isinstance(fire_time, (int, float)):
        raise NonMonotonicTime(f"Event time must be a number, got {fire_time!r}")
    if math.isnan(fire_time) or math.isinf(fire_time) or fire_time < 0:
        raise NonMonotonicTime(f"Event time must be non-negative and finite, got {fire_time}")
    return float(fire_time)


def _check_target(topology: 'TopologyBuilder', target, action: EventAction,
                  node: Optional[NodeHandle]):
    if action.targets_endpoint:
        if not isinstance(target, EndpointHandle) or not topology.has_target(target):
            raise UnknownTarget(f"{action.value}: no endpoint {target} in topology")
        if node is not None:
            raise UnknownTarget(f"{action.value}: endpoint events take no node qualifier")
        return

    if not isinstance(target, LinkHandle) or not topology.has_target(target):
        raise UnknownTarget(f"{action.value}: no link {target} in topology")
    if node is not None:
        if not isinstance(node, NodeHandle) or not topology.has_target(node):
            raise UnknownTarget(f"{action.value}: no node {node} in topology")
        if node not in topology.link(target).nodes:
            raise UnknownTarget(f"{action.value}: {node} has no interface on {target}")
