"""
netscen.topology - Node/link graph and address partitioning
"""

from netscen.topology.model import (
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
from netscen.topology.builder import TopologyBuilder

__all__ = [
    'AddressBlock',
    'AppKind',
    'Endpoint',
    'EndpointHandle',
    'EndpointRole',
    'Link',
    'LinkHandle',
    'LinkKind',
    'Node',
    'NodeHandle',
    'Position',
    'TopologyBuilder',
]
