"""
runner.py - ScenarioRunner

Applies a validated topology and schedule to a simulation kernel and runs it.

Responsibilities:
1. Validate the schedule against the topology before any kernel call
2. Register nodes, stacks, links, address blocks, positions and endpoints,
   keeping kernel-native handles keyed by topology handles
3. Register one kernel callback per ordered event
4. Configure stop time and trace sinks, then block in the kernel's run
5. Report completion or propagate the kernel's fatal error

The runner executes no events itself; it is a translation and registration
layer. It borrows topology and schedule for one run and keeps no reference
to them afterwards.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, TYPE_CHECKING

import yaml

from netscen.errors import KernelError, RegistrationError, ScenarioError
from netscen.schedule.schedule import EventAction, ScheduledEvent

# Avoid circular import
if TYPE_CHECKING:
    from netscen.config.settings import SimulationConfig
    from netscen.kernel.kernel import Kernel
    from netscen.kernel.metrics import KernelMetrics
    from netscen.schedule.schedule import ScenarioSchedule
    from netscen.topology.builder import TopologyBuilder

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """Results from one scenario run."""
    success: bool
    duration_sec: float
    virtual_time_sec: float
    events_registered: int = 0
    metrics: Optional['KernelMetrics'] = None
    error_message: Optional[str] = None


class ScenarioRunner:
    """
    Translate a scenario onto a Kernel and run it.

    Usage:
        runner = ScenarioRunner(SimPyKernel(), config)
        result = runner.run(topology, schedule, simulation_end=10.0)
    """

    def __init__(self, kernel: Optional['Kernel'] = None,
                 config: Optional['SimulationConfig'] = None):
        """
        Initialize runner.

        Args:
            kernel: Kernel instance (default: SimPyKernel seeded from config)
            config: Simulation configuration (default: SimulationConfig())
        """
        if config is None:
            from netscen.config.settings import SimulationConfig
            config = SimulationConfig()
        self.config = config

        if kernel is None:
            from netscen.kernel.simpy_kernel import SimPyKernel
            kernel = SimPyKernel(seed=config.seed)
        self.kernel = kernel

        self._native_nodes: Dict[Any, Any] = {}
        self._native_links: Dict[Any, Any] = {}
        self._native_endpoints: Dict[Any, Any] = {}

    def run(self, topology: 'TopologyBuilder', schedule: 'ScenarioSchedule',
            simulation_end: Optional[float] = None) -> RunResult:
        """
        Validate, register and run one scenario.

        Args:
            topology: Built topology
            schedule: Schedule referencing topology handles
            simulation_end: Stop time in seconds (default: config.stop_time_s)

        Returns:
            RunResult with success=True

        Raises:
            ScenarioError: If validation or registration fails (nothing has run)
            KernelError: If the kernel reports a fatal error while running
        """
        if simulation_end is None:
            simulation_end = self.config.stop_time_s

        # Phase 1: Validate before any kernel call
        schedule.validate(topology, simulation_end)

        # Discard native objects and clock of any previous run
        self.kernel.reset()

        start_wall_time = time.time()
        try:
            # Phase 2: Topology
            self._register_topology(topology)
            logger.info("Registered %d node(s), %d link(s), %d endpoint(s)",
                        len(self._native_nodes), len(self._native_links),
                        len(self._native_endpoints))

            # Phase 3: Events
            registered = 0
            for event in schedule.produce_ordered_events():
                callback = self._make_callback(event)
                try:
                    self.kernel.schedule(event.fire_time, callback)
                except ValueError as e:
                    raise RegistrationError(f"Kernel rejected {event}: {e}")
                registered += 1
            logger.info("Registered %d event(s)", registered)

            # Phase 4: Execution surface
            try:
                self.kernel.stop_at(simulation_end)
            except ValueError as e:
                raise RegistrationError(f"Kernel rejected stop time {simulation_end}s: {e}")
            if self.config.traces.ascii_path:
                self.kernel.enable_ascii_trace(self.config.traces.ascii_path)
            if self.config.traces.animation_path:
                self.kernel.enable_animation(self.config.traces.animation_path)
            if self.config.traces.pcap_prefix:
                self.kernel.enable_pcap(self.config.traces.pcap_prefix)

            logger.info("Run simulation until %gs", simulation_end)
            metrics = self.kernel.run()
        finally:
            self._native_nodes = {}
            self._native_links = {}
            self._native_endpoints = {}

        elapsed = time.time() - start_wall_time
        logger.info("Done. %d action(s) in %.3fs wall time", metrics.events_fired, elapsed)
        return RunResult(
            success=True,
            duration_sec=elapsed,
            virtual_time_sec=simulation_end,
            events_registered=registered,
            metrics=metrics,
        )

    def _register_topology(self, topology: 'TopologyBuilder'):
        kernel = self.kernel

        for node in topology.nodes:
            if node.handle in self._native_nodes:
                raise RegistrationError(f"Duplicate registration of {node.handle}")
            native = self._call(kernel.create_node, node, what=f"node {node.name}")
            self._native_nodes[node.handle] = native
            if node.stack_installed:
                self._call(kernel.install_stack, native, what=f"stack on {node.name}")
            if node.position is not None:
                self._call(kernel.set_position, native, node.position, what=f"position of {node.name}")

        for link in topology.links:
            if link.handle in self._native_links:
                raise RegistrationError(f"Duplicate registration of {link.handle}")
            members = [self._native(self._native_nodes, n) for n in link.nodes]
            native = self._call(kernel.create_link, link, members, what=f"link {link.name}")
            self._native_links[link.handle] = native
            if link.address_block is not None:
                addresses = [link.address_block.host_address(i) for i in range(len(link.nodes))]
                self._call(kernel.assign_addresses, native, link.address_block, addresses,
                           what=f"addresses of {link.name}")

        for endpoint in topology.endpoints:
            if endpoint.handle in self._native_endpoints:
                raise RegistrationError(f"Duplicate registration of {endpoint.handle}")
            native_node = self._native(self._native_nodes, endpoint.node)
            remote = topology.resolve_remote(endpoint.handle)
            native = self._call(kernel.create_endpoint, endpoint, native_node, remote,
                                what=f"endpoint {endpoint.name}")
            self._native_endpoints[endpoint.handle] = native

    def _make_callback(self, event: ScheduledEvent) -> Callable[[], None]:
        """Bind an event to its kernel mutation, resolving native handles now."""
        kernel = self.kernel

        if event.action == EventAction.START_ENDPOINT:
            native = self._native(self._native_endpoints, event.target)
            return lambda: kernel.start_endpoint(native)
        if event.action == EventAction.STOP_ENDPOINT:
            native = self._native(self._native_endpoints, event.target)
            return lambda: kernel.stop_endpoint(native)

        native_link = self._native(self._native_links, event.target)
        native_node = None
        if event.node is not None:
            native_node = self._native(self._native_nodes, event.node)
        if event.action == EventAction.SET_LINK_INTERFACE_UP:
            return lambda: kernel.set_interface_up(native_link, native_node)
        return lambda: kernel.set_interface_down(native_link, native_node)

    @staticmethod
    def _native(table: Dict[Any, Any], handle) -> Any:
        if handle not in table:
            raise RegistrationError(f"No kernel handle registered for {handle}")
        return table[handle]

    @staticmethod
    def _call(method, *args, what: str):
        try:
            return method(*args)
        except ValueError as e:
            raise RegistrationError(f"Kernel rejected {what}: {e}")


def run_scenario(scenario_path: str, seed: Optional[int] = None,
                 stop_time: Optional[float] = None,
                 kernel: Optional['Kernel'] = None) -> RunResult:
    """
    Convenience function to run a scenario from YAML file.

    Args:
        scenario_path: Path to YAML scenario file
        seed: Optional override for scenario seed
        stop_time: Optional override for simulation stop time (seconds)
        kernel: Kernel to use (default: SimPyKernel)

    Returns:
        RunResult; failures are reported with success=False
    """
    from netscen.config.scenario import load_scenario

    try:
        scenario = load_scenario(scenario_path)

        if seed is not None:
            scenario.config.seed = seed
        if stop_time is not None:
            scenario.config.stop_time_s = stop_time

        built = scenario.build()
        runner = ScenarioRunner(kernel, built.config)
        return runner.run(built.topology, built.schedule)

    except (ScenarioError, KernelError, ValueError, OSError, yaml.YAMLError) as e:
        logger.error("Scenario %s failed: %s", scenario_path, e)
        return RunResult(
            success=False,
            duration_sec=0.0,
            virtual_time_sec=0.0,
            error_message=str(e),
        )
