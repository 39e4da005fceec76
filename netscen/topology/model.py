"""
model.py - Topology records and handles

Nodes, links and endpoints live in arenas owned by TopologyBuilder and are
addressed by stable integer handles. Schedules and runners only ever hold
handles, never the records themselves.
"""

import ipaddress
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple


class LinkKind(str, Enum):
    """Link medium kind."""
    POINT_TO_POINT = "point_to_point"
    SHARED_MEDIUM = "shared_medium"
    WIRELESS = "wireless"


class EndpointRole(str, Enum):
    SOURCE = "source"
    SINK = "sink"


class AppKind(str, Enum):
    """Traffic application hosted by an endpoint."""
    UDP_ECHO_SERVER = "udp_echo_server"
    UDP_ECHO_CLIENT = "udp_echo_client"
    ONOFF = "onoff"
    BULK_SEND = "bulk_send"
    PACKET_SINK = "packet_sink"


APP_ROLES: Dict[AppKind, EndpointRole] = {
    AppKind.UDP_ECHO_SERVER: EndpointRole.SINK,
    AppKind.PACKET_SINK: EndpointRole.SINK,
    AppKind.UDP_ECHO_CLIENT: EndpointRole.SOURCE,
    AppKind.ONOFF: EndpointRole.SOURCE,
    AppKind.BULK_SEND: EndpointRole.SOURCE,
}

# Recognized per-kind options. Anything else is rejected at build time.
LINK_OPTIONS: Dict[LinkKind, FrozenSet[str]] = {
    LinkKind.POINT_TO_POINT: frozenset({'queue', 'mtu'}),
    LinkKind.SHARED_MEDIUM: frozenset({'mtu'}),
    LinkKind.WIRELESS: frozenset({'ssid', 'station_manager', 'access_points', 'active_probing'}),
}

APP_OPTIONS: Dict[AppKind, FrozenSet[str]] = {
    AppKind.UDP_ECHO_SERVER: frozenset(),
    AppKind.UDP_ECHO_CLIENT: frozenset({'max_packets', 'interval', 'packet_size'}),
    AppKind.ONOFF: frozenset({'protocol', 'data_rate', 'packet_size', 'on_time', 'off_time'}),
    AppKind.BULK_SEND: frozenset({'protocol', 'max_bytes'}),
    AppKind.PACKET_SINK: frozenset({'protocol'}),
}


@dataclass(frozen=True, order=True)
class NodeHandle:
    index: int

    def __str__(self):
        return f"node#{self.index}"


@dataclass(frozen=True, order=True)
class LinkHandle:
    index: int

    def __str__(self):
        return f"link#{self.index}"


@dataclass(frozen=True, order=True)
class EndpointHandle:
    index: int

    def __str__(self):
        return f"endpoint#{self.index}"


@dataclass(frozen=True)
class Position:
    """Visualization position, no effect on routing or traffic."""
    x: float
    y: float
    z: float = 0.0


@dataclass(frozen=True)
class AddressBlock:
    """
    An IPv4 subnet owned by one link.

    Interface addresses are handed to the link's member nodes in membership
    order, starting at the first host address.
    """
    network: ipaddress.IPv4Network

    @property
    def first(self) -> int:
        return int(self.network.network_address)

    @property
    def last(self) -> int:
        return int(self.network.broadcast_address)

    @property
    def num_hosts(self) -> int:
        # /31 and /32 have no network/broadcast reservation
        if self.network.prefixlen >= 31:
            return self.network.num_addresses
        return self.network.num_addresses - 2

    def overlaps(self, other: 'AddressBlock') -> bool:
        """Interval intersection over the 32-bit address space."""
        return self.first <= other.last and other.first <= self.last

    def host_address(self, index: int) -> ipaddress.IPv4Address:
        """Return the index-th host address (0-based)."""
        if not 0 <= index < self.num_hosts:
            raise IndexError(f"Host index {index} outside {self.network}")
        offset = index if self.network.prefixlen >= 31 else index + 1
        return self.network.network_address + offset

    def __str__(self):
        return str(self.network)


@dataclass
class Node:
    handle: NodeHandle
    name: str
    links: List[LinkHandle] = field(default_factory=list)
    position: Optional[Position] = None
    stack_installed: bool = False


@dataclass
class Link:
    handle: LinkHandle
    name: str
    kind: LinkKind
    bandwidth_bps: int
    delay_s: float
    nodes: Tuple[NodeHandle, ...]
    options: Dict[str, Any] = field(default_factory=dict)
    address_block: Optional[AddressBlock] = None


@dataclass
class Endpoint:
    """
    A traffic source or sink bound to (node, port).

    Sources name their destination either as a member interface of a link
    (remote_link, remote_node) or as a literal remote_address.
    """
    handle: EndpointHandle
    name: str
    node: NodeHandle
    port: int
    app: AppKind
    role: EndpointRole
    options: Dict[str, Any] = field(default_factory=dict)
    remote_link: Optional[LinkHandle] = None
    remote_node: Optional[NodeHandle] = None
    remote_address: Optional[ipaddress.IPv4Address] = None
