"""
netscen.config - Scenario and configuration management

Provides the explicit SimulationConfig and YAML-based scenario parsing.
"""

from .settings import LinkDefaults, SimulationConfig, TraceConfig
from .scenario import BuiltScenario, Scenario, load_scenario

__all__ = ['BuiltScenario', 'LinkDefaults', 'Scenario', 'SimulationConfig', 'TraceConfig', 'load_scenario']
