"""
netscen.harness - Scenario orchestration and execution

Translates a built scenario onto a simulation kernel and runs it.
"""

from .runner import RunResult, ScenarioRunner, run_scenario

__all__ = ['RunResult', 'ScenarioRunner', 'run_scenario']
