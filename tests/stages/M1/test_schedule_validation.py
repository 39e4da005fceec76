#!/usr/bin/env python3
"""
test_schedule_validation.py - M1 Unit Tests for ScenarioSchedule

Tests event recording, target checks and schedule validation.
"""

import sys
from pathlib import Path

import pytest

# Add project root to path
_project_root = Path(__file__).parent.parent.parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from netscen.errors import NonMonotonicTime, ScheduleConflict, UnknownTarget
from netscen.schedule.schedule import EventAction, EventHandle, ScenarioSchedule
from netscen.topology.builder import TopologyBuilder
from netscen.topology.model import AppKind, EndpointHandle, LinkHandle, LinkKind, NodeHandle


@pytest.fixture
def two_node():
    """2 nodes, one point-to-point link on 10.0.0.0/24, one echo client."""
    topo = TopologyBuilder()
    a, b = topo.add_node("a"), topo.add_node("b")
    topo.install_stack(a)
    topo.install_stack(b)
    link = topo.add_link(LinkKind.POINT_TO_POINT, 5_000_000, 0.002, [a, b])
    topo.assign_address_block(link, "10.0.0.0", "255.255.255.0")
    endpoint_a = topo.add_endpoint(a, 9, AppKind.UDP_ECHO_CLIENT, remote=(link, b))
    return topo, link, endpoint_a, a, b


class TestAddEvent:
    """Recording events."""

    def test_returns_insertion_handles(self, two_node):
        topo, link, ep, a, b = two_node
        schedule = ScenarioSchedule(topo)

        assert schedule.add_event(1.0, ep, EventAction.START_ENDPOINT) == EventHandle(0)
        assert schedule.add_event(5.0, ep, "stop_endpoint") == EventHandle(1)
        assert len(schedule) == 2

    @pytest.mark.parametrize("bad_time", [-0.1, float('nan'), float('inf'), float('-inf')])
    def test_invalid_time(self, two_node, bad_time):
        topo, link, ep, a, b = two_node
        schedule = ScenarioSchedule(topo)
        with pytest.raises(NonMonotonicTime):
            schedule.add_event(bad_time, ep, EventAction.START_ENDPOINT)

    def test_zero_time_allowed(self, two_node):
        topo, link, ep, a, b = two_node
        schedule = ScenarioSchedule(topo)
        schedule.add_event(0, ep, EventAction.START_ENDPOINT)
        assert schedule.events[0].fire_time == 0.0

    def test_unknown_endpoint(self, two_node):
        topo, link, ep, a, b = two_node
        schedule = ScenarioSchedule(topo)
        with pytest.raises(UnknownTarget):
            schedule.add_event(1.0, EndpointHandle(42), EventAction.START_ENDPOINT)

    def test_unknown_link(self, two_node):
        topo, link, ep, a, b = two_node
        schedule = ScenarioSchedule(topo)
        with pytest.raises(UnknownTarget):
            schedule.add_event(1.0, LinkHandle(9), EventAction.SET_LINK_INTERFACE_DOWN)

    def test_action_target_kind_mismatch(self, two_node):
        topo, link, ep, a, b = two_node
        schedule = ScenarioSchedule(topo)
        with pytest.raises(UnknownTarget):
            schedule.add_event(1.0, link, EventAction.START_ENDPOINT)
        with pytest.raises(UnknownTarget):
            schedule.add_event(1.0, ep, EventAction.SET_LINK_INTERFACE_UP)

    def test_unknown_action(self, two_node):
        topo, link, ep, a, b = two_node
        schedule = ScenarioSchedule(topo)
        with pytest.raises(UnknownTarget, match="Unknown event action"):
            schedule.add_event(1.0, ep, "reboot")
        assert len(schedule) == 0

    def test_node_qualifier_must_be_member(self, two_node):
        topo, link, ep, a, b = two_node
        outsider = topo.add_node()
        schedule = ScenarioSchedule(topo)

        schedule.add_event(1.0, link, EventAction.SET_LINK_INTERFACE_DOWN, node=a)
        with pytest.raises(UnknownTarget, match="no interface"):
            schedule.add_event(2.0, link, EventAction.SET_LINK_INTERFACE_DOWN, node=outsider)
        with pytest.raises(UnknownTarget):
            schedule.add_event(2.0, link, EventAction.SET_LINK_INTERFACE_DOWN, node=NodeHandle(99))

    def test_endpoint_window(self, two_node):
        topo, link, ep, a, b = two_node
        schedule = ScenarioSchedule(topo)
        schedule.add_endpoint_window(ep, 1.0, 5.0)

        actions = [(e.fire_time, e.action) for e in schedule.events]
        assert actions == [(1.0, EventAction.START_ENDPOINT), (5.0, EventAction.STOP_ENDPOINT)]

    def test_endpoint_window_requires_start_before_stop(self, two_node):
        topo, link, ep, a, b = two_node
        schedule = ScenarioSchedule(topo)
        with pytest.raises(NonMonotonicTime):
            schedule.add_endpoint_window(ep, 5.0, 5.0)
        assert len(schedule) == 0


class TestValidate:
    """Schedule validation against topology and simulation end."""

    def test_empty_schedule_always_valid(self, two_node):
        topo, link, ep, a, b = two_node
        ScenarioSchedule(topo).validate(topo, 6.0)

    def test_empty_topology_empty_schedule(self):
        topo = TopologyBuilder()
        ScenarioSchedule(topo).validate(topo, 1.0)

    def test_start_then_stop_validates(self, two_node):
        """Start@1.0, Stop@5.0, end 6.0."""
        topo, link, ep, a, b = two_node
        schedule = ScenarioSchedule(topo)
        schedule.add_event(1.0, ep, EventAction.START_ENDPOINT)
        schedule.add_event(5.0, ep, EventAction.STOP_ENDPOINT)

        schedule.validate(topo, 6.0)

        ordered = [(e.action, e.fire_time) for e in schedule.produce_ordered_events()]
        assert ordered == [(EventAction.START_ENDPOINT, 1.0), (EventAction.STOP_ENDPOINT, 5.0)]

    def test_stop_without_start(self, two_node):
        topo, link, ep, a, b = two_node
        schedule = ScenarioSchedule(topo)
        schedule.add_event(5.0, ep, EventAction.STOP_ENDPOINT)

        with pytest.raises(ScheduleConflict, match="no matching earlier start"):
            schedule.validate(topo, 6.0)

    def test_stop_inserted_before_later_start(self, two_node):
        """Insertion order does not matter, fire_time does."""
        topo, link, ep, a, b = two_node
        schedule = ScenarioSchedule(topo)
        schedule.add_event(1.0, ep, EventAction.STOP_ENDPOINT)
        schedule.add_event(3.0, ep, EventAction.START_ENDPOINT)

        with pytest.raises(ScheduleConflict):
            schedule.validate(topo, 6.0)

    def test_stop_inserted_first_but_fires_later(self, two_node):
        topo, link, ep, a, b = two_node
        schedule = ScenarioSchedule(topo)
        schedule.add_event(5.0, ep, EventAction.STOP_ENDPOINT)
        schedule.add_event(1.0, ep, EventAction.START_ENDPOINT)

        schedule.validate(topo, 6.0)

    def test_double_start(self, two_node):
        topo, link, ep, a, b = two_node
        schedule = ScenarioSchedule(topo)
        schedule.add_event(1.0, ep, EventAction.START_ENDPOINT)
        schedule.add_event(2.0, ep, EventAction.START_ENDPOINT)

        with pytest.raises(ScheduleConflict, match="already running"):
            schedule.validate(topo, 6.0)

    def test_restart_after_stop(self, two_node):
        topo, link, ep, a, b = two_node
        schedule = ScenarioSchedule(topo)
        schedule.add_endpoint_window(ep, 1.0, 2.0)
        schedule.add_endpoint_window(ep, 3.0, 4.0)

        schedule.validate(topo, 6.0)

    def test_stop_at_start_instant(self, two_node):
        topo, link, ep, a, b = two_node
        schedule = ScenarioSchedule(topo)
        schedule.add_event(2.0, ep, EventAction.START_ENDPOINT)
        schedule.add_event(2.0, ep, EventAction.STOP_ENDPOINT)

        with pytest.raises(ScheduleConflict, match="same instant"):
            schedule.validate(topo, 6.0)

    def test_event_at_simulation_end(self, two_node):
        topo, link, ep, a, b = two_node
        schedule = ScenarioSchedule(topo)
        schedule.add_event(1.0, ep, EventAction.START_ENDPOINT)
        schedule.add_event(6.0, ep, EventAction.STOP_ENDPOINT)

        with pytest.raises(ScheduleConflict, match="simulation end"):
            schedule.validate(topo, 6.0)

    def test_event_just_before_simulation_end(self, two_node):
        topo, link, ep, a, b = two_node
        schedule = ScenarioSchedule(topo)
        schedule.add_event(1.0, ep, EventAction.START_ENDPOINT)
        schedule.add_event(6.0 - 1e-9, ep, EventAction.STOP_ENDPOINT)

        schedule.validate(topo, 6.0)

    def test_event_after_simulation_end(self, two_node):
        topo, link, ep, a, b = two_node
        schedule = ScenarioSchedule(topo)
        schedule.add_event(7.0, link, EventAction.SET_LINK_INTERFACE_DOWN)

        with pytest.raises(ScheduleConflict):
            schedule.validate(topo, 6.0)

    @pytest.mark.parametrize("end", [0, -1.0, float('inf'), float('nan')])
    def test_invalid_simulation_end(self, two_node, end):
        topo, link, ep, a, b = two_node
        with pytest.raises(NonMonotonicTime):
            ScenarioSchedule(topo).validate(topo, end)

    def test_same_time_up_and_down_is_ambiguous(self, two_node):
        """Up and Down on the same link at 2.0."""
        topo, link, ep, a, b = two_node
        schedule = ScenarioSchedule(topo)
        schedule.add_event(2.0, link, EventAction.SET_LINK_INTERFACE_UP)
        schedule.add_event(2.0, link, EventAction.SET_LINK_INTERFACE_DOWN)

        with pytest.raises(ScheduleConflict, match="ambiguous"):
            schedule.validate(topo, 10.0)

    def test_same_time_toggles_on_different_interfaces(self, two_node):
        topo, link, ep, a, b = two_node
        schedule = ScenarioSchedule(topo)
        schedule.add_event(2.0, link, EventAction.SET_LINK_INTERFACE_DOWN, node=a)
        schedule.add_event(2.0, link, EventAction.SET_LINK_INTERFACE_DOWN, node=b)

        schedule.validate(topo, 10.0)

    def test_same_time_whole_link_and_interface_is_ambiguous(self, two_node):
        topo, link, ep, a, b = two_node
        schedule = ScenarioSchedule(topo)
        schedule.add_event(2.0, link, EventAction.SET_LINK_INTERFACE_DOWN, node=a)
        schedule.add_event(2.0, link, EventAction.SET_LINK_INTERFACE_UP)

        with pytest.raises(ScheduleConflict, match="ambiguous"):
            schedule.validate(topo, 10.0)

    def test_down_up_down_up(self, two_node):
        topo, link, ep, a, b = two_node
        schedule = ScenarioSchedule(topo)
        for t, action in ((2, "interface_down"), (4, "interface_up"),
                          (12, "interface_down"), (14, "interface_up")):
            schedule.add_event(t, link, action, node=a)

        schedule.validate(topo, 16.0)

    def test_down_twice_without_up(self, two_node):
        topo, link, ep, a, b = two_node
        schedule = ScenarioSchedule(topo)
        schedule.add_event(2.0, link, EventAction.SET_LINK_INTERFACE_DOWN)
        schedule.add_event(3.0, link, EventAction.SET_LINK_INTERFACE_DOWN)

        with pytest.raises(ScheduleConflict, match="already down"):
            schedule.validate(topo, 10.0)

    def test_whole_link_down_after_interface_down(self, two_node):
        topo, link, ep, a, b = two_node
        schedule = ScenarioSchedule(topo)
        schedule.add_event(2.0, link, EventAction.SET_LINK_INTERFACE_DOWN, node=b)
        schedule.add_event(3.0, link, EventAction.SET_LINK_INTERFACE_DOWN)

        with pytest.raises(ScheduleConflict, match="already down"):
            schedule.validate(topo, 10.0)

    def test_redundant_up_is_accepted(self, two_node):
        topo, link, ep, a, b = two_node
        schedule = ScenarioSchedule(topo)
        schedule.add_event(1.0, link, EventAction.SET_LINK_INTERFACE_UP)

        schedule.validate(topo, 10.0)

    def test_validate_against_other_topology(self, two_node):
        topo, link, ep, a, b = two_node
        schedule = ScenarioSchedule(topo)
        schedule.add_event(1.0, ep, EventAction.START_ENDPOINT)

        with pytest.raises(UnknownTarget):
            schedule.validate(TopologyBuilder(), 10.0)
