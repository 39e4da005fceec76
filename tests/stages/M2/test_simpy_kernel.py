#!/usr/bin/env python3
"""
test_simpy_kernel.py - M2 Unit Tests for SimPyKernel

Tests callback ordering, stop time, endpoint/interface state, error
wrapping and trace output.
"""

import ipaddress
import struct
import sys
import xml.etree.ElementTree as ET
from pathlib import Path

import pytest

# Add project root to path
_project_root = Path(__file__).parent.parent.parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from netscen.errors import KernelError
from netscen.kernel.simpy_kernel import EPHEMERAL_PORTS, SimPyKernel
from netscen.kernel.trace import PCAP_LINKTYPES
from netscen.topology.builder import TopologyBuilder
from netscen.topology.model import AddressBlock, AppKind, LinkKind, Position


@pytest.fixture
def pair():
    """Topology a--b on 10.0.0.0/24 with an echo server on b."""
    topo = TopologyBuilder()
    a, b = topo.add_node("a"), topo.add_node("b")
    topo.install_stack(a)
    topo.install_stack(b)
    link = topo.add_link(LinkKind.POINT_TO_POINT, 5_000_000, 0.002, [a, b], name="ab")
    topo.assign_address_block(link, "10.0.0.0", "255.255.255.0")
    server = topo.add_endpoint(b, 9, AppKind.UDP_ECHO_SERVER, name="server")
    return topo, a, b, link, server


def _register(kernel, topo, a, b, link, server):
    na = kernel.create_node(topo.node(a))
    nb = kernel.create_node(topo.node(b))
    kernel.install_stack(na)
    kernel.install_stack(nb)
    nl = kernel.create_link(topo.link(link), [na, nb])
    app = kernel.create_endpoint(topo.endpoint(server), nb, None)
    return na, nb, nl, app


class TestScheduling:
    """Callback execution order."""

    def test_callbacks_run_in_time_order(self):
        kernel = SimPyKernel()
        fired = []
        kernel.schedule(3.0, lambda: fired.append(("c", kernel.now)))
        kernel.schedule(1.0, lambda: fired.append(("a", kernel.now)))
        kernel.schedule(2.0, lambda: fired.append(("b", kernel.now)))
        kernel.stop_at(10.0)
        kernel.run()

        assert fired == [("a", 1.0), ("b", 2.0), ("c", 3.0)]

    def test_same_time_callbacks_fifo(self):
        kernel = SimPyKernel()
        fired = []
        for label in "xyzw":
            kernel.schedule(1.0, lambda label=label: fired.append(label))
        kernel.stop_at(2.0)
        kernel.run()

        assert fired == ["x", "y", "z", "w"]

    def test_stop_time_bounds_execution(self):
        kernel = SimPyKernel()
        fired = []
        kernel.schedule(1.0, lambda: fired.append(1.0))
        kernel.schedule(5.0, lambda: fired.append(5.0))
        kernel.stop_at(3.0)
        kernel.run()

        assert fired == [1.0]
        assert kernel.now == 3.0

    def test_run_without_stop_drains_events(self):
        kernel = SimPyKernel()
        fired = []
        kernel.schedule(4.0, lambda: fired.append(kernel.now))
        kernel.run()
        assert fired == [4.0]

    def test_schedule_in_past_rejected(self):
        kernel = SimPyKernel()
        kernel.schedule(2.0, lambda: None)
        kernel.run()
        with pytest.raises(ValueError, match="already"):
            kernel.schedule(1.0, lambda: None)

    def test_stop_at_must_be_in_future(self):
        kernel = SimPyKernel()
        with pytest.raises(ValueError):
            kernel.stop_at(0.0)

    def test_callback_exception_wrapped(self):
        kernel = SimPyKernel()

        def boom():
            raise ZeroDivisionError("division by zero")

        kernel.schedule(1.0, boom)
        kernel.stop_at(2.0)
        with pytest.raises(KernelError, match="t=1"):
            kernel.run()

    def test_reset(self):
        kernel = SimPyKernel()
        kernel.schedule(1.0, lambda: None)
        kernel.run()
        kernel.reset()

        assert kernel.now == 0
        assert kernel.nodes == []
        assert kernel.metrics.events_fired == 0


class TestState:
    """Endpoint and interface mutations."""

    def test_endpoint_lifecycle(self, pair):
        kernel = SimPyKernel()
        na, nb, nl, app = _register(kernel, *pair)

        kernel.schedule(1.0, lambda: kernel.start_endpoint(app))
        kernel.schedule(5.0, lambda: kernel.stop_endpoint(app))
        kernel.stop_at(6.0)
        metrics = kernel.run()

        assert app.running is False
        assert metrics.endpoints_started == 1
        assert metrics.endpoints_stopped == 1
        assert [(r.time_s, r.action, r.target) for r in metrics.actions] == [
            (1.0, "start_endpoint", "server"),
            (5.0, "stop_endpoint", "server"),
        ]

    def test_double_start_is_fatal(self, pair):
        kernel = SimPyKernel()
        na, nb, nl, app = _register(kernel, *pair)
        kernel.schedule(1.0, lambda: kernel.start_endpoint(app))
        kernel.schedule(2.0, lambda: kernel.start_endpoint(app))
        kernel.stop_at(3.0)

        with pytest.raises(KernelError, match="already running"):
            kernel.run()

    def test_interface_toggles(self, pair):
        kernel = SimPyKernel()
        na, nb, nl, app = _register(kernel, *pair)

        kernel.schedule(2.0, lambda: kernel.set_interface_down(nl, na))
        kernel.stop_at(3.0)
        metrics = kernel.run()

        assert nl.interface_of(na).up is False
        assert nl.interface_of(nb).up is True
        assert metrics.actions[0].target == "ab/a"

    def test_whole_link_toggle(self, pair):
        kernel = SimPyKernel()
        na, nb, nl, app = _register(kernel, *pair)
        kernel.schedule(1.0, lambda: kernel.set_interface_down(nl))
        kernel.schedule(2.0, lambda: kernel.set_interface_up(nl))
        kernel.stop_at(3.0)
        metrics = kernel.run()

        assert all(i.up for i in nl.interfaces)
        assert metrics.interfaces_down == 1
        assert metrics.interfaces_up == 1


class TestConfiguration:
    """Configuration surface errors."""

    def test_address_count_mismatch(self, pair):
        kernel = SimPyKernel()
        na, nb, nl, app = _register(kernel, *pair)
        block = AddressBlock(ipaddress.IPv4Network("10.0.0.0/24"))
        with pytest.raises(ValueError, match="address"):
            kernel.assign_addresses(nl, block, [block.host_address(0)])

    def test_address_outside_block(self, pair):
        kernel = SimPyKernel()
        na, nb, nl, app = _register(kernel, *pair)
        block = AddressBlock(ipaddress.IPv4Network("10.0.0.0/24"))
        with pytest.raises(ValueError, match="outside"):
            kernel.assign_addresses(nl, block, [ipaddress.IPv4Address("10.0.0.1"),
                                                ipaddress.IPv4Address("10.0.1.1")])

    def test_endpoint_requires_stack(self, pair):
        topo, a, b, link, server = pair
        kernel = SimPyKernel()
        bare = kernel.create_node(topo.node(b))
        with pytest.raises(ValueError, match="internet stack"):
            kernel.create_endpoint(topo.endpoint(server), bare, None)

    def test_foreign_node_rejected(self, pair):
        topo, a, b, link, server = pair
        other = SimPyKernel().create_node(topo.node(a))
        kernel = SimPyKernel()
        with pytest.raises(ValueError, match="Not a node"):
            kernel.install_stack(other)


class TestTraces:
    """ASCII trace and animation output."""

    def test_ascii_trace(self, pair, tmp_path):
        kernel = SimPyKernel()
        na, nb, nl, app = _register(kernel, *pair)
        trace_path = tmp_path / "out" / "run.tr"
        kernel.enable_ascii_trace(str(trace_path))

        kernel.schedule(1.0, lambda: kernel.start_endpoint(app))
        kernel.schedule(2.0, lambda: kernel.set_interface_down(nl))
        kernel.stop_at(3.0)
        kernel.run()

        lines = trace_path.read_text().splitlines()
        assert lines == [
            "1.000000000 start_endpoint server port=9",
            "2.000000000 interface_down ab",
        ]

    def test_animation(self, pair, tmp_path):
        topo, a, b, link, server = pair
        kernel = SimPyKernel()
        na, nb, nl, app = _register(kernel, *pair)
        kernel.set_position(na, Position(10.0, 20.0))
        anim_path = tmp_path / "anim.xml"
        kernel.enable_animation(str(anim_path))
        kernel.stop_at(5.0)
        kernel.run()

        root = ET.parse(anim_path).getroot()
        assert root.tag == "anim"
        assert root.get("stop") == "5"
        nodes = root.findall("node")
        assert [n.get("name") for n in nodes] == ["a", "b"]
        assert nodes[0].get("locX") == "10"
        assert nodes[1].get("locX") is None
        link_elem = root.find("link")
        assert link_elem.get("name") == "ab"
        assert [m.get("id") for m in link_elem.findall("member")] == ["0", "1"]


class TestSeed:
    """The seed drives source ephemeral ports."""

    @pytest.fixture
    def with_client(self, pair):
        topo, a, b, link, server = pair
        client = topo.add_endpoint(a, 9, AppKind.UDP_ECHO_CLIENT, remote=(link, b), name="client")
        return topo, a, b, link, server, client

    def _build(self, seed, topo, a, b, link, server, client):
        kernel = SimPyKernel(seed=seed)
        na, nb, nl, app = _register(kernel, topo, a, b, link, server)
        native = kernel.create_endpoint(topo.endpoint(client), na, topo.resolve_remote(client))
        return kernel, app, native

    def test_sources_get_ephemeral_port(self, with_client):
        kernel, sink, source = self._build(1, *with_client)
        assert sink.source_port is None
        assert EPHEMERAL_PORTS[0] <= source.source_port <= EPHEMERAL_PORTS[1]

    def test_same_seed_same_port(self, with_client):
        first = self._build(42, *with_client)[2].source_port
        again = self._build(42, *with_client)[2].source_port
        assert again == first

    def test_reset_restarts_random_stream(self):
        kernel = SimPyKernel(seed=9)
        before = [kernel.rng.random() for _ in range(3)]
        kernel.reset()
        assert [kernel.rng.random() for _ in range(3)] == before

    def test_start_trace_includes_source_port(self, with_client, tmp_path):
        kernel, sink, source = self._build(3, *with_client)
        kernel.enable_ascii_trace(str(tmp_path / "run.tr"))
        kernel.schedule(1.0, lambda: kernel.start_endpoint(source))
        kernel.stop_at(2.0)
        kernel.run()

        line = (tmp_path / "run.tr").read_text().strip()
        assert line == (f"1.000000000 start_endpoint client port=9 "
                        f"remote=10.0.0.2 sport={source.source_port}")


class TestResetAndPcap:
    """Reset isolation and capture output."""

    def test_reset_keeps_returned_metrics(self):
        kernel = SimPyKernel()
        kernel.schedule(1.0, lambda: kernel.metrics.record(kernel.now, "start_endpoint", "x"))
        kernel.stop_at(2.0)
        metrics = kernel.run()
        kernel.reset()

        assert metrics.events_fired == 1
        assert kernel.metrics is not metrics
        assert kernel.metrics.events_fired == 0

    def test_pcap_file_per_device(self, pair, tmp_path):
        topo, a, b, link, server = pair
        lan_node = topo.add_node("c")
        lan = topo.add_link(LinkKind.SHARED_MEDIUM, 100_000_000, 0.0, [b, lan_node], name="lan")
        kernel = SimPyKernel()
        na, nb, nl, app = _register(kernel, topo, a, b, link, server)
        nc = kernel.create_node(topo.node(lan_node))
        kernel.create_link(topo.link(lan), [nb, nc])
        kernel.enable_pcap(str(tmp_path / "cap" / "run"))
        kernel.stop_at(1.0)
        kernel.run()

        names = sorted(p.name for p in (tmp_path / "cap").iterdir())
        assert names == ["run-0-0.pcap", "run-1-0.pcap", "run-1-1.pcap", "run-2-0.pcap"]

        header = (tmp_path / "cap" / "run-1-1.pcap").read_bytes()
        assert len(header) == 24
        magic, major, minor, _, _, snaplen, linktype = struct.unpack('<IHHiIII', header)
        assert (magic, major, minor) == (0xa1b2c3d4, 2, 4)
        assert linktype == PCAP_LINKTYPES['shared_medium'] == 1
        p2p = struct.unpack('<IHHiIII', (tmp_path / "cap" / "run-0-0.pcap").read_bytes())
        assert p2p[-1] == 9
