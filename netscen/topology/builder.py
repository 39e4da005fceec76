"""
builder.py - TopologyBuilder

Constructs the node/link graph of a scenario and partitions IPv4 address
space across links.

Design philosophy:
- Explicit arenas addressed by stable handles; no positional container
  indices and no implicit aliasing between containers
- A node shared by two links is simply listed in both links
- Fail fast: every malformed reference raises immediately

Example:
    topo = TopologyBuilder()
    n0, n1 = topo.add_node("n0"), topo.add_node("n1")
    link = topo.add_link(LinkKind.POINT_TO_POINT, 5_000_000, 0.002, [n0, n1])
    topo.assign_address_block(link, "10.1.1.0", "255.255.255.0")
    topo.install_stack(n0)
"""

import ipaddress
import logging
import math
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union, TYPE_CHECKING

from netscen.errors import AddressConflict, InvalidTopology
from netscen.topology.model import (
    APP_OPTIONS,
    APP_ROLES,
    LINK_OPTIONS,
    AddressBlock,
    AppKind,
    Endpoint,
    EndpointHandle,
    EndpointRole,
    Link,
    LinkHandle,
    LinkKind,
    Node,
    NodeHandle,
    Position,
)

# Avoid circular import
if TYPE_CHECKING:
    from netscen.config.settings import SimulationConfig

logger = logging.getLogger(__name__)

# Minimum member count per link kind; point-to-point is also capped at 2
_MIN_MEMBERS = {
    LinkKind.POINT_TO_POINT: 2,
    LinkKind.SHARED_MEDIUM: 2,
    LinkKind.WIRELESS: 1,
}

RemoteSpec = Union[Tuple[LinkHandle, NodeHandle], str, ipaddress.IPv4Address]


class TopologyBuilder:
    """
    Owns every Node, Link, AddressBlock and Endpoint of one scenario.

    Records are created once and never destroyed during a run.
    """

    def __init__(self, config: Optional['SimulationConfig'] = None):
        """
        Initialize an empty topology.

        Args:
            config: Simulation configuration supplying per-kind link defaults
                    (default: SimulationConfig())
        """
        if config is None:
            from netscen.config.settings import SimulationConfig
            config = SimulationConfig()
        self.config = config

        self._nodes: List[Node] = []
        self._links: List[Link] = []
        self._endpoints: List[Endpoint] = []

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def add_node(self, name: Optional[str] = None) -> NodeHandle:
        """Create a node and return its handle."""
        handle = NodeHandle(len(self._nodes))
        self._nodes.append(Node(handle=handle, name=name or f"n{handle.index}"))
        logger.debug("Added %s (%s)", handle, self._nodes[-1].name)
        return handle

    def install_stack(self, node: NodeHandle):
        """Mark a node as routing/transport capable. Idempotent."""
        record = self.node(node)
        if not record.stack_installed:
            record.stack_installed = True
            logger.debug("Installed stack on %s", record.name)

    def position_node(self, node: NodeHandle, x: float, y: float, z: float = 0.0):
        """Attach visualization coordinates to a node."""
        coords = (float(x), float(y), float(z))
        if not all(math.isfinite(c) for c in coords):
            raise InvalidTopology(f"Position of {node} must be finite, got {coords}")
        self.node(node).position = Position(*coords)

    # ------------------------------------------------------------------
    # Links
    # ------------------------------------------------------------------

    def add_link(self, kind: Union[LinkKind, str],
                 bandwidth: Optional[int] = None,
                 delay: Optional[float] = None,
                 endpoints: Sequence[NodeHandle] = (),
                 options: Optional[Dict[str, Any]] = None,
                 name: Optional[str] = None) -> LinkHandle:
        """
        Create a link between existing nodes.

        Args:
            kind: Medium kind
            bandwidth: Data rate in bits/s (None: config default for kind)
            delay: Propagation delay in seconds (None: config default for kind)
            endpoints: Member nodes, in interface-address order
            options: Kind-specific options (see LINK_OPTIONS)
            name: Optional label used in traces

        Returns:
            Handle of the new link

        Raises:
            InvalidTopology: On bad kind, member count, unknown or repeated
                             node, bandwidth that is not a finite number
                             >= 1, delay that is negative or not finite, or an
                             unrecognized option
        """
        try:
            kind = LinkKind(kind)
        except ValueError:
            raise InvalidTopology(f"Unknown link kind: '{kind}'")

        members = tuple(endpoints)
        minimum = _MIN_MEMBERS[kind]
        if len(members) < minimum:
            raise InvalidTopology(
                f"{kind.value} link needs at least {minimum} node(s), got {len(members)}")
        if kind == LinkKind.POINT_TO_POINT and len(members) != 2:
            raise InvalidTopology(f"point_to_point link needs exactly 2 nodes, got {len(members)}")
        for member in members:
            self.node(member)
        if len(set(members)) != len(members):
            raise InvalidTopology(f"Link lists the same node more than once: {[str(m) for m in members]}")

        defaults = self.config.defaults_for(kind)
        bandwidth_bps = defaults.data_rate_bps if bandwidth is None else bandwidth
        delay_s = defaults.delay_s if delay is None else delay
        if not _is_number(bandwidth_bps) or not math.isfinite(bandwidth_bps) or bandwidth_bps < 1:
            raise InvalidTopology(f"Link bandwidth must be a finite number of at least 1 bit/s, got {bandwidth_bps!r}")
        if not _is_number(delay_s) or not math.isfinite(delay_s) or delay_s < 0:
            raise InvalidTopology(f"Link delay must be non-negative and finite, got {delay_s!r}")

        merged = dict(defaults.options)
        merged.update(options or {})
        unknown = set(merged) - LINK_OPTIONS[kind]
        if unknown:
            raise InvalidTopology(
                f"Unrecognized option(s) for {kind.value} link: {sorted(unknown)}")
        if 'access_points' in merged:
            aps = tuple(merged['access_points'])
            stray = [str(ap) for ap in aps if ap not in members]
            if stray:
                raise InvalidTopology(f"Access points {stray} are not members of the link")
            merged['access_points'] = aps

        handle = LinkHandle(len(self._links))
        link = Link(
            handle=handle,
            name=name or f"l{handle.index}",
            kind=kind,
            bandwidth_bps=int(bandwidth_bps),
            delay_s=float(delay_s),
            nodes=members,
            options=merged,
        )
        self._links.append(link)
        for member in members:
            self._nodes[member.index].links.append(handle)

        logger.debug("Added %s (%s, %s, %d bps, %.6fs) members=%s",
                     handle, link.name, kind.value, link.bandwidth_bps, link.delay_s,
                     [self._nodes[m.index].name for m in members])
        return handle

    def assign_address_block(self, link: LinkHandle, subnet_base: str,
                             subnet_mask: Union[str, int]) -> AddressBlock:
        """
        Give a link its subnet.

        Args:
            link: Link to address
            subnet_base: Network address, e.g. "10.1.1.0"
            subnet_mask: Dotted mask ("255.255.255.0") or prefix length (24)

        Returns:
            The assigned AddressBlock

        Raises:
            AddressConflict: If the block intersects any assigned block
            InvalidTopology: If the block is malformed, the link is unknown or
                             already addressed, or the block is too small
        """
        record = self.link(link)
        try:
            network = ipaddress.IPv4Network(f"{subnet_base}/{subnet_mask}", strict=True)
        except ValueError as e:
            raise InvalidTopology(f"Invalid address block {subnet_base}/{subnet_mask}: {e}")
        block = AddressBlock(network)

        # Linear scan over existing blocks
        for other in self._links:
            if other.address_block is not None and other.address_block.overlaps(block):
                raise AddressConflict(
                    f"Block {block} for {record.name} overlaps {other.address_block} "
                    f"already assigned to {other.name}")

        if record.address_block is not None:
            raise InvalidTopology(f"Link {record.name} already has address block {record.address_block}")
        if block.num_hosts < len(record.nodes):
            raise InvalidTopology(
                f"Block {block} has {block.num_hosts} host address(es), "
                f"link {record.name} needs {len(record.nodes)}")

        record.address_block = block
        logger.debug("Assigned %s to %s", block, record.name)
        return block

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    def add_endpoint(self, node: NodeHandle, port: int, app: Union[AppKind, str],
                     remote: Optional[RemoteSpec] = None,
                     options: Optional[Dict[str, Any]] = None,
                     name: Optional[str] = None) -> EndpointHandle:
        """
        Create a traffic source or sink on a node.

        Args:
            node: Hosting node (stack must be installed)
            port: Transport port (1-65535)
            app: Application kind; sources and sinks follow APP_ROLES
            remote: Destination for sources, either (link, node) naming a
                    member interface or a literal IPv4 address
            options: App-specific options (see APP_OPTIONS)
            name: Optional label used in traces

        Returns:
            Handle of the new endpoint
        """
        try:
            app = AppKind(app)
        except ValueError:
            raise InvalidTopology(f"Unknown application kind: '{app}'")
        role = APP_ROLES[app]

        host = self.node(node)
        if not host.stack_installed:
            raise InvalidTopology(f"Node {host.name} has no stack installed, cannot host {app.value}")
        if isinstance(port, bool) or not isinstance(port, int) or not 1 <= port <= 65535:
            raise InvalidTopology(f"Port must be an integer in 1-65535, got {port!r}")

        options = dict(options or {})
        unknown = set(options) - APP_OPTIONS[app]
        if unknown:
            raise InvalidTopology(f"Unrecognized option(s) for {app.value}: {sorted(unknown)}")

        remote_link = remote_node = remote_address = None
        if role == EndpointRole.SOURCE:
            if remote is None:
                raise InvalidTopology(f"{app.value} on {host.name} needs a remote destination")
            if isinstance(remote, tuple):
                remote_link, remote_node = remote
                link = self.link(remote_link)
                if remote_node not in link.nodes:
                    raise InvalidTopology(
                        f"Remote {remote_node} is not a member of link {link.name}")
            else:
                try:
                    remote_address = ipaddress.IPv4Address(str(remote))
                except ValueError as e:
                    raise InvalidTopology(f"Invalid remote address '{remote}': {e}")
        elif remote is not None:
            raise InvalidTopology(f"{app.value} is a sink and does not take a remote destination")

        handle = EndpointHandle(len(self._endpoints))
        self._endpoints.append(Endpoint(
            handle=handle,
            name=name or f"{app.value}{handle.index}",
            node=node,
            port=port,
            app=app,
            role=role,
            options=options,
            remote_link=remote_link,
            remote_node=remote_node,
            remote_address=remote_address,
        ))
        logger.debug("Added %s (%s on %s:%d)", handle, app.value, host.name, port)
        return handle

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def node(self, handle: NodeHandle) -> Node:
        if not isinstance(handle, NodeHandle) or not 0 <= handle.index < len(self._nodes):
            raise InvalidTopology(f"Unknown node handle: {handle}")
        return self._nodes[handle.index]

    def link(self, handle: LinkHandle) -> Link:
        if not isinstance(handle, LinkHandle) or not 0 <= handle.index < len(self._links):
            raise InvalidTopology(f"Unknown link handle: {handle}")
        return self._links[handle.index]

    def endpoint(self, handle: EndpointHandle) -> Endpoint:
        if not isinstance(handle, EndpointHandle) or not 0 <= handle.index < len(self._endpoints):
            raise InvalidTopology(f"Unknown endpoint handle: {handle}")
        return self._endpoints[handle.index]

    @property
    def nodes(self) -> Tuple[Node, ...]:
        return tuple(self._nodes)

    @property
    def links(self) -> Tuple[Link, ...]:
        return tuple(self._links)

    @property
    def endpoints(self) -> Tuple[Endpoint, ...]:
        return tuple(self._endpoints)

    def has_target(self, handle) -> bool:
        """True if the handle names a node, link or endpoint of this topology."""
        arenas = {
            NodeHandle: self._nodes,
            LinkHandle: self._links,
            EndpointHandle: self._endpoints,
        }
        arena = arenas.get(type(handle))
        return arena is not None and 0 <= handle.index < len(arena)

    def address_blocks(self) -> List[AddressBlock]:
        return [link.address_block for link in self._links if link.address_block is not None]

    def interface_address(self, link: LinkHandle, node: NodeHandle) -> ipaddress.IPv4Address:
        """
        Address of a node's interface on a link.

        Raises:
            InvalidTopology: If the node is not on the link or the link has no block
        """
        record = self.link(link)
        if node not in record.nodes:
            raise InvalidTopology(f"{node} is not a member of link {record.name}")
        if record.address_block is None:
            raise InvalidTopology(f"Link {record.name} has no address block assigned")
        return record.address_block.host_address(record.nodes.index(node))

    def resolve_remote(self, endpoint: EndpointHandle) -> Optional[ipaddress.IPv4Address]:
        """Destination address of a source endpoint (None for sinks)."""
        record = self.endpoint(endpoint)
        if record.remote_address is not None:
            return record.remote_address
        if record.remote_link is not None:
            return self.interface_address(record.remote_link, record.remote_node)
        return None

    def shared_nodes(self, link_a: LinkHandle, link_b: LinkHandle) -> List[NodeHandle]:
        """Nodes attached to both links, in link_a membership order."""
        other = set(self.link(link_b).nodes)
        return [n for n in self.link(link_a).nodes if n in other]


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
