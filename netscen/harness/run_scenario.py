#!/usr/bin/env python3
"""
run_scenario.py - netscen Scenario Execution

Executes network scenarios from YAML configuration files.

Usage:
    netscen-run scenarios/dynamic_routing.yaml
    netscen-run scenarios/dynamic_routing.yaml --seed 123
    netscen-run scenarios/midterm.yaml --stop-time 15 --verbose
    netscen-run scenarios/wireless.yaml --dry-run

The script will:
1. Load scenario from YAML
2. Build topology and schedule
3. Validate the schedule against the topology
4. Register everything with the kernel and run it
5. Report results
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

import yaml

from netscen.config.scenario import load_scenario
from netscen.config.units import format_data_rate
from netscen.errors import KernelError, ScenarioError
from netscen.harness.runner import ScenarioRunner


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Run a netscen network scenario from YAML configuration.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run scenario with its own seed and stop time
  netscen-run scenarios/dynamic_routing.yaml

  # Override seed
  netscen-run scenarios/dynamic_routing.yaml --seed 123

  # Validate only
  netscen-run scenarios/midterm.yaml --dry-run
        """
    )

    parser.add_argument(
        "config",
        type=Path,
        help="Path to scenario YAML file"
    )

    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Override random seed (default: use seed from YAML)"
    )

    parser.add_argument(
        "--stop-time",
        type=float,
        default=None,
        help="Override simulation stop time in seconds"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose output (per-event logging)"
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Build and validate scenario without executing"
    )

    parser.add_argument(
        "--metrics-csv",
        type=Path,
        default=None,
        help="Write the executed action log to this CSV file"
    )

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        0 on success, 1 on failure
    """
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s [%(name)s] %(levelname)s: %(message)s',
    )

    if not args.config.exists():
        print(f"ERROR: Scenario file not found: {args.config}", file=sys.stderr)
        return 1

    try:
        print(f"Loading scenario from: {args.config}")
        scenario = load_scenario(str(args.config))

        if args.seed is not None:
            print(f"Overriding seed: {scenario.config.seed} → {args.seed}")
            scenario.config.seed = args.seed
        if args.stop_time is not None:
            print(f"Overriding stop time: {scenario.config.stop_time_s}s → {args.stop_time}s")
            scenario.config.stop_time_s = args.stop_time

        built = scenario.build()
        topology, schedule = built.topology, built.schedule

        if args.dry_run:
            print("\n" + "="*60)
            print("DRY RUN MODE - Validation Only")
            print("="*60)

            schedule.validate(topology, scenario.config.stop_time_s)

            print("\n✓ Scenario validation PASSED")
            print("\nScenario summary:")
            print(f"  Stop time: {scenario.config.stop_time_s}s")
            print(f"  Seed: {scenario.config.seed}")
            print(f"  Nodes: {len(topology.nodes)}")
            print(f"  Links: {len(topology.links)}")
            for link in topology.links:
                block = link.address_block or "unaddressed"
                print(f"    - {link.name}: {link.kind.value}, {format_data_rate(link.bandwidth_bps)}, "
                      f"{link.delay_s * 1000:g}ms, {block}")
            print(f"  Endpoints: {len(topology.endpoints)}")
            print(f"  Events: {len(schedule)}")
            for event in schedule.produce_ordered_events():
                print(f"    - {event}")
            print("\n(Use without --dry-run to execute)")
            return 0

        print("\n" + "="*60)
        print("Executing Scenario")
        print("="*60)

        runner = ScenarioRunner(config=built.config)
        result = runner.run(topology, schedule)

        print("\n" + "="*60)
        print("Execution Complete")
        print("="*60)

        print("\n✓ SUCCESS")
        print(f"\nResults:")
        print(f"  Virtual time: {result.virtual_time_sec:.2f}s")
        print(f"  Wall time: {result.duration_sec:.3f}s")
        print(f"  Events registered: {result.events_registered}")
        for key, value in result.metrics.summary().items():
            print(f"  {key}: {value}")

        if args.metrics_csv is not None:
            path = result.metrics.export_csv(str(args.metrics_csv))
            print(f"\nAction log written to {path}")
        return 0

    except ScenarioError as e:
        print(f"\nERROR: Invalid scenario ({type(e).__name__}):", file=sys.stderr)
        print(f"  {e}", file=sys.stderr)
        return 1

    except KernelError as e:
        print(f"\n✗ FAILED", file=sys.stderr)
        print(f"\nKernel error: {e}", file=sys.stderr)
        return 1

    except (ValueError, yaml.YAMLError) as e:
        print(f"\nERROR: Invalid scenario configuration:", file=sys.stderr)
        print(f"  {e}", file=sys.stderr)
        return 1

    except OSError as e:
        print(f"\n✗ FAILED", file=sys.stderr)
        print(f"\nOutput error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
