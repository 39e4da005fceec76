"""
kernel.py - Simulation kernel interface

Defines the Kernel abstract base class: the configuration and execution
surface that ScenarioRunner drives.

DESIGN PHILOSOPHY:
- The kernel is an opaque collaborator: it executes registered callbacks in
  increasing time order (ties in registration order) and owns the protocol
  stacks, routing, PHY/MAC models and trace formats
- Native handles returned by the create_* methods are opaque to callers
- Pluggable: SimPyKernel is the reference implementation; bindings to a full
  packet-level simulator implement the same interface
"""

from abc import ABC, abstractmethod
from ipaddress import IPv4Address
from typing import Any, Callable, Optional, Sequence, TYPE_CHECKING

# Avoid circular import
if TYPE_CHECKING:
    from netscen.kernel.metrics import KernelMetrics
    from netscen.topology.model import AddressBlock, Endpoint, Link, Node, Position


class Kernel(ABC):
    """
    Abstract base class for simulation kernels.

    A Kernel is responsible for:
    - Creating kernel-native nodes, links, addresses and applications
    - Executing callbacks at scheduled virtual times
    - Writing trace, animation and capture output on request
    """

    # Configuration surface

    @abstractmethod
    def create_node(self, node: 'Node') -> Any:
        """Create a kernel-native node for a topology node."""
        pass

    @abstractmethod
    def install_stack(self, native_node: Any):
        """Install the internet stack on a native node."""
        pass

    @abstractmethod
    def create_link(self, link: 'Link', members: Sequence[Any]) -> Any:
        """
        Create a native channel and one device per member node.

        Args:
            link: Topology link record (kind, bandwidth, delay, options)
            members: Native nodes, in link membership order
        """
        pass

    @abstractmethod
    def assign_addresses(self, native_link: Any, block: 'AddressBlock',
                         addresses: Sequence[IPv4Address]):
        """Assign interface addresses to a native link's devices, in member order."""
        pass

    @abstractmethod
    def set_position(self, native_node: Any, position: 'Position'):
        """Set a constant position for animation output."""
        pass

    @abstractmethod
    def create_endpoint(self, endpoint: 'Endpoint', native_node: Any,
                        remote_address: Optional[IPv4Address]) -> Any:
        """Create a stopped traffic application bound to (node, port)."""
        pass

    # Mutations invoked from scheduled callbacks

    @abstractmethod
    def start_endpoint(self, native_endpoint: Any):
        pass

    @abstractmethod
    def stop_endpoint(self, native_endpoint: Any):
        pass

    @abstractmethod
    def set_interface_up(self, native_link: Any, native_node: Optional[Any] = None):
        """Bring up one member's interface, or every interface when native_node is None."""
        pass

    @abstractmethod
    def set_interface_down(self, native_link: Any, native_node: Optional[Any] = None):
        """Take down one member's interface, or every interface when native_node is None."""
        pass

    # Execution surface

    @abstractmethod
    def schedule(self, time_s: float, callback: Callable[[], None]):
        """
        Register a callback to fire at absolute virtual time time_s.

        Raises:
            ValueError: If time_s is in the kernel's past
        """
        pass

    @abstractmethod
    def stop_at(self, time_s: float):
        """Configure the virtual time at which run() returns."""
        pass

    @abstractmethod
    def enable_ascii_trace(self, path: str):
        pass

    @abstractmethod
    def enable_animation(self, path: str):
        pass

    @abstractmethod
    def enable_pcap(self, prefix: str):
        """Write one capture file per device, named after prefix."""
        pass

    @abstractmethod
    def run(self) -> 'KernelMetrics':
        """
        Run to completion (stop time reached or no events left).

        Returns:
            Metrics of what executed

        Raises:
            KernelError: On a fatal error during execution
        """
        pass

    @abstractmethod
    def reset(self):
        """
        Discard all native objects and scheduled callbacks.

        ScenarioRunner calls it before registering each run.
        """
        pass
