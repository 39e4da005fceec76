"""
simpy_kernel.py - Reference kernel on SimPy

Executes scenario callbacks on a simpy.Environment and keeps the state a
scenario can change: which applications run and which interfaces are up.

DESIGN PHILOSOPHY:
- Single-threaded discrete-event loop; callbacks run to completion
- Same-time callbacks fire in registration order (SimPy schedules events
  FIFO by creation at equal time and priority)
- No packet delivery or routing: that belongs to a packet-level kernel
- Any exception escaping a callback is a fatal KernelError
"""

import logging
import random
from dataclasses import dataclass, field
from ipaddress import IPv4Address
from typing import Callable, Dict, List, Optional, Sequence

import simpy

from netscen.errors import KernelError
from netscen.kernel.kernel import Kernel
from netscen.kernel.metrics import KernelMetrics
from netscen.kernel.trace import AnimationWriter, AsciiTraceWriter, PcapWriter
from netscen.topology.model import AddressBlock, Endpoint, EndpointRole, Link, Node, Position

logger = logging.getLogger(__name__)


@dataclass
class KernelNode:
    id: int
    name: str
    stack: bool = False
    position: Optional[Position] = None


@dataclass
class KernelInterface:
    node_id: int
    address: Optional[IPv4Address] = None
    up: bool = True


@dataclass
class KernelLink:
    id: int
    name: str
    kind: str
    bandwidth_bps: int
    delay_s: float
    interfaces: List[KernelInterface] = field(default_factory=list)

    def interface_of(self, node: KernelNode) -> KernelInterface:
        for interface in self.interfaces:
            if interface.node_id == node.id:
                return interface
        raise KernelError(f"{node.name} has no device on channel {self.name}")


@dataclass
class KernelApp:
    id: int
    name: str
    app: str
    node_id: int
    port: int
    remote_address: Optional[IPv4Address] = None
    source_port: Optional[int] = None
    running: bool = False


# IANA dynamic port range, used for source-side ephemeral ports
EPHEMERAL_PORTS = (49152, 65535)


class SimPyKernel(Kernel):
    """
    Reference kernel backed by simpy.Environment.

    The seed drives the kernel's random stream (self.rng). Source
    applications draw their ephemeral local port from it, so two runs with
    the same seed produce identical traces.

    Usage:
        kernel = SimPyKernel(seed=1)
        node = kernel.create_node(topology.node(h))
        kernel.schedule(2.0, lambda: kernel.set_interface_down(link))
        kernel.stop_at(10.0)
        metrics = kernel.run()
    """

    def __init__(self, seed: int = 1):
        self.seed = seed
        self._init_state()

    def _init_state(self):
        self.env = simpy.Environment()
        self.rng = random.Random(self.seed)
        self.metrics = KernelMetrics()
        self.nodes: List[KernelNode] = []
        self.links: List[KernelLink] = []
        self.apps: List[KernelApp] = []
        self._stop_time: Optional[float] = None
        self._trace: Optional[AsciiTraceWriter] = None
        self._animation: Optional[AnimationWriter] = None
        self._pcap: Optional[PcapWriter] = None

    @property
    def now(self) -> float:
        return self.env.now

    # ------------------------------------------------------------------
    # Configuration surface
    # ------------------------------------------------------------------

    def create_node(self, node: Node) -> KernelNode:
        native = KernelNode(id=len(self.nodes), name=node.name)
        self.nodes.append(native)
        return native

    def install_stack(self, native_node: KernelNode):
        self._own_node(native_node).stack = True

    def create_link(self, link: Link, members: Sequence[KernelNode]) -> KernelLink:
        native = KernelLink(
            id=len(self.links),
            name=link.name,
            kind=link.kind.value,
            bandwidth_bps=link.bandwidth_bps,
            delay_s=link.delay_s,
            interfaces=[KernelInterface(node_id=self._own_node(m).id) for m in members],
        )
        self.links.append(native)
        return native

    def assign_addresses(self, native_link: KernelLink, block: AddressBlock,
                         addresses: Sequence[IPv4Address]):
        if len(addresses) != len(native_link.interfaces):
            raise ValueError(
                f"Channel {native_link.name} has {len(native_link.interfaces)} device(s), "
                f"got {len(addresses)} address(es)")
        for interface, address in zip(native_link.interfaces, addresses):
            if address not in block.network:
                raise ValueError(f"Address {address} is outside {block}")
            interface.address = address

    def set_position(self, native_node: KernelNode, position: Position):
        self._own_node(native_node).position = position

    def create_endpoint(self, endpoint: Endpoint, native_node: KernelNode,
                        remote_address: Optional[IPv4Address]) -> KernelApp:
        node = self._own_node(native_node)
        if not node.stack:
            raise ValueError(f"{node.name} has no internet stack for {endpoint.app.value}")
        native = KernelApp(
            id=len(self.apps),
            name=endpoint.name,
            app=endpoint.app.value,
            node_id=node.id,
            port=endpoint.port,
            remote_address=remote_address,
        )
        if endpoint.role == EndpointRole.SOURCE:
            native.source_port = self.rng.randint(*EPHEMERAL_PORTS)
        self.apps.append(native)
        return native

    def _own_node(self, native_node: KernelNode) -> KernelNode:
        if not isinstance(native_node, KernelNode) or native_node.id >= len(self.nodes) \
                or self.nodes[native_node.id] is not native_node:
            raise ValueError(f"Not a node of this kernel: {native_node!r}")
        return native_node

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def start_endpoint(self, native_endpoint: KernelApp):
        if native_endpoint.running:
            raise KernelError(f"Application {native_endpoint.name} is already running")
        native_endpoint.running = True
        self._record("start_endpoint", native_endpoint.name,
                     port=native_endpoint.port, remote=native_endpoint.remote_address,
                     sport=native_endpoint.source_port)

    def stop_endpoint(self, native_endpoint: KernelApp):
        if not native_endpoint.running:
            raise KernelError(f"Application {native_endpoint.name} is not running")
        native_endpoint.running = False
        self._record("stop_endpoint", native_endpoint.name)

    def set_interface_up(self, native_link: KernelLink, native_node: Optional[KernelNode] = None):
        self._set_interfaces(native_link, native_node, up=True)

    def set_interface_down(self, native_link: KernelLink, native_node: Optional[KernelNode] = None):
        self._set_interfaces(native_link, native_node, up=False)

    def _set_interfaces(self, native_link: KernelLink, native_node: Optional[KernelNode], up: bool):
        if native_node is None:
            interfaces = native_link.interfaces
        else:
            interfaces = [native_link.interface_of(native_node)]
        for interface in interfaces:
            interface.up = up

        action = "interface_up" if up else "interface_down"
        target = native_link.name if native_node is None else f"{native_link.name}/{native_node.name}"
        self._record(action, target)

    def _record(self, action: str, target: str, **fields):
        logger.debug("t=%.6fs %s %s", self.env.now, action, target)
        self.metrics.record(self.env.now, action, target)
        if self._trace is not None:
            self._trace.write(self.env.now, action, target, **fields)

    # ------------------------------------------------------------------
    # Execution surface
    # ------------------------------------------------------------------

    def schedule(self, time_s: float, callback: Callable[[], None]):
        if time_s < self.env.now:
            raise ValueError(f"Cannot schedule at {time_s}s, kernel time is already {self.env.now}s")
        event = self.env.timeout(time_s - self.env.now)
        event.callbacks.append(lambda _event: callback())

    def stop_at(self, time_s: float):
        if time_s <= self.env.now:
            raise ValueError(f"Stop time {time_s}s is not after current time {self.env.now}s")
        self._stop_time = time_s

    def enable_ascii_trace(self, path: str):
        self._trace = AsciiTraceWriter(path)

    def enable_animation(self, path: str):
        self._animation = AnimationWriter(path)

    def enable_pcap(self, prefix: str):
        self._pcap = PcapWriter(prefix)

    def run(self) -> KernelMetrics:
        logger.info("Running kernel until %s", f"{self._stop_time:g}s" if self._stop_time else "idle")

        if self._trace is not None:
            self._trace.open()
        try:
            if self._stop_time is None:
                self.env.run()
            else:
                self.env.run(until=self._stop_time)
        except KernelError:
            raise
        except Exception as e:
            raise KernelError(f"Kernel failed at t={self.env.now}s: {e}") from e
        finally:
            if self._trace is not None:
                self._trace.close()

        if self._animation is not None:
            for node in self.nodes:
                position = None
                if node.position is not None:
                    position = (node.position.x, node.position.y, node.position.z)
                self._animation.add_node(node.id, node.name, position)
            for link in self.links:
                self._animation.add_link(link.name, link.kind, [i.node_id for i in link.interfaces])
            self._animation.write(self._stop_time)

        if self._pcap is not None:
            # Device index counts a node's devices in link creation order
            device_counts: Dict[int, int] = {}
            for link in self.links:
                for interface in link.interfaces:
                    device = device_counts.get(interface.node_id, 0)
                    device_counts[interface.node_id] = device + 1
                    self._pcap.write_device(interface.node_id, device, link.kind)

        logger.info("Kernel finished at t=%gs, %d action(s) executed",
                    self.env.now, self.metrics.events_fired)
        return self.metrics

    def reset(self):
        # Fresh metrics object; results of earlier runs keep theirs
        self._init_state()
