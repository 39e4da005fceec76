"""
scenario.py - YAML Scenario Parser

Parses network scenarios from YAML files and builds them into a
TopologyBuilder plus ScenarioSchedule.

Design philosophy:
- Keep it simple: minimal validation here, semantic checks live in
  TopologyBuilder and ScenarioSchedule
- Fail fast: raise clear exceptions on errors
- No magic: every node, link and endpoint is named explicitly; a node shared
  by two links is listed in both

Example YAML:
    simulation:
      stop_time_s: 20
      seed: 1

    defaults:
      point_to_point: {data_rate: 10Mbps, delay: 2ms}

    nodes:
      - id: n0
        position: [0, 0]
      - id: n1

    links:
      - id: l01
        kind: point_to_point
        nodes: [n0, n1]
        address: 10.1.1.0/24

    endpoints:
      - id: sink
        node: n1
        app: packet_sink
        port: 9
        start_s: 1.0
        stop_s: 10.0
      - id: onoff
        node: n0
        app: onoff
        port: 9
        remote: {link: l01, node: n1}
        options: {data_rate: 2kbps, packet_size: 50}
        start_s: 1.0
        stop_s: 10.0

    events:
      - at_s: 2.0
        action: interface_down
        link: l01
        node: n0
      - at_s: 4.0
        action: interface_up
        link: l01
        node: n0

    traces:
      ascii: out/trace.tr
      animation: out/anim.xml
      pcap: out/capture
"""

import yaml
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from pathlib import Path

from netscen.config.settings import LinkDefaults, SimulationConfig, TraceConfig
from netscen.config.units import parse_data_rate, parse_time
from netscen.schedule.schedule import EventAction, ScenarioSchedule
from netscen.topology.builder import TopologyBuilder
from netscen.topology.model import EndpointHandle, LinkHandle, LinkKind, NodeHandle


@dataclass
class NodeSpec:
    id: str
    stack: bool = True
    position: Optional[Tuple[float, float, float]] = None


@dataclass
class LinkSpec:
    """Link entry. data_rate/delay of None fall back to per-kind defaults."""
    id: str
    kind: str
    nodes: List[str]
    data_rate_bps: Optional[int] = None
    delay_s: Optional[float] = None
    address: Optional[Tuple[str, str]] = None
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass
class EndpointSpec:
    id: str
    node: str
    app: str
    port: int
    remote: Any = None
    options: Dict[str, Any] = field(default_factory=dict)
    start_s: Optional[float] = None
    stop_s: Optional[float] = None


@dataclass
class EventSpec:
    at_s: float
    action: str
    link: Optional[str] = None
    node: Optional[str] = None
    endpoint: Optional[str] = None


@dataclass
class BuiltScenario:
    """A scenario converted to handles, ready for ScenarioRunner."""
    config: SimulationConfig
    topology: TopologyBuilder
    schedule: ScenarioSchedule
    node_ids: Dict[str, NodeHandle]
    link_ids: Dict[str, LinkHandle]
    endpoint_ids: Dict[str, EndpointHandle]


@dataclass
class Scenario:
    """
    Parsed scenario description.

    Attributes:
        name: Scenario name (file stem when loaded from YAML)
        config: Simulation-wide configuration
        nodes, links, endpoints, events: Named entries in file order
    """
    name: str
    config: SimulationConfig
    nodes: List[NodeSpec]
    links: List[LinkSpec] = field(default_factory=list)
    endpoints: List[EndpointSpec] = field(default_factory=list)
    events: List[EventSpec] = field(default_factory=list)

    def __post_init__(self):
        """Validate scenario after initialization."""
        if not self.nodes:
            raise ValueError("No nodes defined in scenario")

        for section, entries in (('nodes', self.nodes), ('links', self.links),
                                 ('endpoints', self.endpoints)):
            seen = set()
            for entry in entries:
                if entry.id in seen:
                    raise ValueError(f"Duplicate id '{entry.id}' in {section}")
                seen.add(entry.id)

    def build(self) -> BuiltScenario:
        """
        Construct topology and schedule from the named entries.

        Raises:
            ValueError: If an entry references an undefined id
            InvalidTopology, AddressConflict, UnknownTarget, NonMonotonicTime:
                As raised by TopologyBuilder / ScenarioSchedule
        """
        topology = TopologyBuilder(self.config)
        schedule = ScenarioSchedule(topology)

        node_ids: Dict[str, NodeHandle] = {}
        for spec in self.nodes:
            handle = topology.add_node(spec.id)
            node_ids[spec.id] = handle
            if spec.stack:
                topology.install_stack(handle)
            if spec.position is not None:
                topology.position_node(handle, *spec.position)

        link_ids: Dict[str, LinkHandle] = {}
        for spec in self.links:
            members = [_lookup(node_ids, n, 'node', f"link {spec.id}") for n in spec.nodes]
            options = dict(spec.options)
            if 'access_points' in options:
                options['access_points'] = [
                    _lookup(node_ids, n, 'node', f"link {spec.id} access_points")
                    for n in options['access_points']
                ]
            handle = topology.add_link(spec.kind, spec.data_rate_bps, spec.delay_s,
                                       members, options=options, name=spec.id)
            link_ids[spec.id] = handle
            if spec.address is not None:
                topology.assign_address_block(handle, *spec.address)

        endpoint_ids: Dict[str, EndpointHandle] = {}
        for spec in self.endpoints:
            node = _lookup(node_ids, spec.node, 'node', f"endpoint {spec.id}")
            remote = spec.remote
            if isinstance(remote, dict):
                remote = (_lookup(link_ids, remote.get('link'), 'link', f"endpoint {spec.id} remote"),
                          _lookup(node_ids, remote.get('node'), 'node', f"endpoint {spec.id} remote"))
            handle = topology.add_endpoint(node, spec.port, spec.app, remote=remote,
                                           options=spec.options, name=spec.id)
            endpoint_ids[spec.id] = handle

            if spec.start_s is not None and spec.stop_s is not None:
                schedule.add_endpoint_window(handle, spec.start_s, spec.stop_s)
            elif spec.start_s is not None:
                schedule.add_event(spec.start_s, handle, EventAction.START_ENDPOINT)
            elif spec.stop_s is not None:
                schedule.add_event(spec.stop_s, handle, EventAction.STOP_ENDPOINT)

        for i, spec in enumerate(self.events):
            action = EventAction(spec.action)
            if action.targets_endpoint:
                target = _lookup(endpoint_ids, spec.endpoint, 'endpoint', f"event {i}")
                schedule.add_event(spec.at_s, target, action)
            else:
                target = _lookup(link_ids, spec.link, 'link', f"event {i}")
                node = None
                if spec.node is not None:
                    node = _lookup(node_ids, spec.node, 'node', f"event {i}")
                schedule.add_event(spec.at_s, target, action, node=node)

        return BuiltScenario(
            config=self.config,
            topology=topology,
            schedule=schedule,
            node_ids=node_ids,
            link_ids=link_ids,
            endpoint_ids=endpoint_ids,
        )


def _lookup(table: Dict[str, Any], key: Optional[str], kind: str, context: str):
    if key is None:
        raise ValueError(f"{context}: missing {kind} reference")
    if key not in table:
        raise ValueError(f"{context}: undefined {kind} '{key}'")
    return table[key]


def _require(entry: Dict[str, Any], key: str, context: str):
    if key not in entry:
        raise ValueError(f"{context}: Missing required field '{key}'")
    return entry[key]


def _as_list(data: Dict[str, Any], section: str) -> List[Any]:
    value = data.get(section, [])
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"'{section}' section must be a list")
    for i, entry in enumerate(value):
        if not isinstance(entry, dict):
            raise ValueError(f"{section} entry {i} must be a dict, got {type(entry)}")
    return value


def _parse_address(value: Any, context: str) -> Tuple[str, str]:
    """Accept "10.1.1.0/24", "10.1.1.0/255.255.255.0" or {base, mask}."""
    if isinstance(value, dict):
        return (str(_require(value, 'base', context)), str(_require(value, 'mask', context)))
    text = str(value)
    if '/' not in text:
        raise ValueError(f"{context}: address must be 'base/mask', got '{text}'")
    base, mask = text.split('/', 1)
    return (base.strip(), mask.strip())


def _parse_position(value: Any, context: str) -> Tuple[float, float, float]:
    if not isinstance(value, (list, tuple)) or len(value) not in (2, 3):
        raise ValueError(f"{context}: position must be [x, y] or [x, y, z], got {value!r}")
    coords = [float(v) for v in value]
    if len(coords) == 2:
        coords.append(0.0)
    return tuple(coords)


def _parse_defaults(data: Dict[str, Any]) -> Dict[LinkKind, LinkDefaults]:
    section = data.get('defaults') or {}
    if not isinstance(section, dict):
        raise ValueError("'defaults' section must be a dict")

    base = SimulationConfig().link_defaults
    parsed: Dict[LinkKind, LinkDefaults] = {}
    for kind_name, entry in section.items():
        try:
            kind = LinkKind(kind_name)
        except ValueError:
            raise ValueError(f"defaults: unknown link kind '{kind_name}'")
        if not isinstance(entry, dict):
            raise ValueError(f"defaults.{kind_name} must be a dict")
        fallback = base[kind]
        options = dict(fallback.options)
        options.update(entry.get('options') or {})
        parsed[kind] = LinkDefaults(
            data_rate_bps=parse_data_rate(entry.get('data_rate', fallback.data_rate_bps)),
            delay_s=parse_time(entry.get('delay', fallback.delay_s)),
            options=options,
        )
    return parsed


def load_scenario(yaml_path: str) -> Scenario:
    """
    Load scenario from YAML file.

    Args:
        yaml_path: Path to YAML scenario file

    Returns:
        Scenario object with parsed configuration

    Raises:
        FileNotFoundError: If YAML file doesn't exist
        ValueError: If required fields are missing or invalid
        yaml.YAMLError: If YAML syntax is invalid
    """
    # Check file exists
    path = Path(yaml_path)
    if not path.exists():
        raise FileNotFoundError(f"Scenario file not found: {yaml_path}")

    # Load YAML
    with open(path, 'r') as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML syntax in {yaml_path}: {e}")

    # Validate top-level structure
    if not isinstance(data, dict):
        raise ValueError(f"Scenario file must contain a YAML dict, got {type(data)}")

    if 'simulation' not in data:
        raise ValueError("Missing required section: 'simulation'")
    sim = data['simulation']
    if not isinstance(sim, dict):
        raise ValueError("'simulation' section must be a dict")

    if 'nodes' not in data:
        raise ValueError("Missing required section: 'nodes'")

    stop_time = sim.get('stop_time_s')
    if stop_time is None:
        raise ValueError("Missing required field: simulation.stop_time_s")

    traces = data.get('traces') or {}
    if not isinstance(traces, dict):
        raise ValueError("'traces' section must be a dict")

    config = SimulationConfig(
        stop_time_s=parse_time(stop_time),
        seed=int(sim.get('seed', 1)),
        link_defaults=_parse_defaults(data),
        traces=TraceConfig(
            ascii_path=traces.get('ascii'),
            animation_path=traces.get('animation'),
            pcap_prefix=traces.get('pcap'),
        ),
    )

    nodes = []
    for i, node in enumerate(_as_list(data, 'nodes')):
        context = f"Node {i}"
        node_id = str(_require(node, 'id', context))
        position = None
        if node.get('position') is not None:
            position = _parse_position(node['position'], f"Node {node_id}")
        nodes.append(NodeSpec(id=node_id, stack=bool(node.get('stack', True)), position=position))

    links = []
    for i, link in enumerate(_as_list(data, 'links')):
        context = f"Link {i}"
        link_id = str(_require(link, 'id', context))
        context = f"Link {i} (id={link_id})"
        members = _require(link, 'nodes', context)
        if not isinstance(members, list):
            raise ValueError(f"{context}: 'nodes' must be a list")
        links.append(LinkSpec(
            id=link_id,
            kind=str(_require(link, 'kind', context)),
            nodes=[str(m) for m in members],
            data_rate_bps=parse_data_rate(link['data_rate']) if 'data_rate' in link else None,
            delay_s=parse_time(link['delay']) if 'delay' in link else None,
            address=_parse_address(link['address'], context) if 'address' in link else None,
            options=dict(link.get('options') or {}),
        ))

    endpoints = []
    for i, endpoint in enumerate(_as_list(data, 'endpoints')):
        context = f"Endpoint {i}"
        endpoint_id = str(_require(endpoint, 'id', context))
        context = f"Endpoint {i} (id={endpoint_id})"
        remote = endpoint.get('remote')
        if remote is not None and not isinstance(remote, (dict, str)):
            raise ValueError(f"{context}: remote must be {{link, node}} or an address")
        endpoints.append(EndpointSpec(
            id=endpoint_id,
            node=str(_require(endpoint, 'node', context)),
            app=str(_require(endpoint, 'app', context)),
            port=int(_require(endpoint, 'port', context)),
            remote=remote,
            options=dict(endpoint.get('options') or {}),
            start_s=parse_time(endpoint['start_s']) if endpoint.get('start_s') is not None else None,
            stop_s=parse_time(endpoint['stop_s']) if endpoint.get('stop_s') is not None else None,
        ))

    events = []
    for i, event in enumerate(_as_list(data, 'events')):
        context = f"Event {i}"
        action = str(_require(event, 'action', context))
        if action not in {a.value for a in EventAction}:
            raise ValueError(f"{context}: unknown action '{action}'")
        events.append(EventSpec(
            at_s=parse_time(_require(event, 'at_s', context)),
            action=action,
            link=event.get('link'),
            node=event.get('node'),
            endpoint=event.get('endpoint'),
        ))

    # Create and return scenario
    return Scenario(
        name=path.stem,
        config=config,
        nodes=nodes,
        links=links,
        endpoints=endpoints,
        events=events,
    )
