#!/usr/bin/env python3
"""
Preemptive CPU Scheduling Simulator - Main Entry Point

Runs a scheduling simulation from the command line and prints the run
report, or compares every allocation/yield policy combination on the same
workload.

Usage:
    python main.py                         # Single run with defaults
    python main.py --compare               # Compare all policy combinations
    python main.py -n 20 -c 2 -a random    # 20 processes, 2 CPUs, random allocation
    python main.py --trace --verbose       # Log every render callback

Author: Student
Date: December 2024
"""

import sys
import os
import argparse
import logging
from typing import Optional, Sequence

# Add project root to path for imports
PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from config import (
    SimulationConfig,
    LoggingConfig,
    AllocationStrategy,
    YieldStrategy,
    VERSION,
    APP_NAME,
)
from simulation import SchedulingEngine, BatchSimulator
from utils import setup_logging, LoggingRenderer, DataExporter, format_report
from validators import ConfigurationError


ALLOCATION_CHOICES = {
    'priority': AllocationStrategy.HIGHEST_PRIORITY,
    'highest_priority': AllocationStrategy.HIGHEST_PRIORITY,
    'random': AllocationStrategy.RANDOM,
}

YIELD_CHOICES = {
    'equal': YieldStrategy.EQUAL_WEIGHT,
    'priority': YieldStrategy.FAVOR_PRIORITY,
    'lookahead': YieldStrategy.FAVOR_LOOKAHEAD,
    'time': YieldStrategy.FAVOR_TIME_ON_CPU,
}


def print_banner():
    """Print application banner."""
    print("=" * 70)
    print(f"  {APP_NAME} v{VERSION}")
    print("=" * 70)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=f"{APP_NAME} v{VERSION}",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                       Run one simulation with defaults
  python main.py --compare --seed 7    Compare all policies on one workload
  python main.py -a random -y time     Random allocation, favor time-on-cpu
        """
    )
    parser.add_argument('--version', '-v', action='version', version=f'{APP_NAME} v{VERSION}')
    parser.add_argument('--processes', '-n', type=int, default=10,
                        help='Number of processes (default: 10)')
    parser.add_argument('--workload-length', '-w', type=int, default=100,
                        help='Instructions per workload (default: 100)')
    parser.add_argument('--lookahead', '-l', type=int, default=5,
                        help='Lookahead window for the yield policy (default: 5)')
    parser.add_argument('--switch-penalty', '-s', type=int, default=1,
                        help='Context-switch penalty in ticks (default: 1)')
    parser.add_argument('--cpus', '-c', type=int, default=1,
                        help='Number of CPUs (default: 1)')
    parser.add_argument('--allocation', '-a', choices=sorted(ALLOCATION_CHOICES),
                        default='priority', help='Free-CPU allocation strategy (default: priority)')
    parser.add_argument('--yield-strategy', '-y', choices=sorted(YIELD_CHOICES),
                        default='equal', help='Yield weight preset (default: equal)')
    parser.add_argument('--seed', type=int, default=None, help='Random seed')
    parser.add_argument('--max-ticks', type=int, default=None,
                        help='Stop after this many ticks even if processes remain')
    parser.add_argument('--compare', action='store_true',
                        help='Run every allocation/yield combination on the same workload')
    parser.add_argument('--export', metavar='PATH', default=None,
                        help='Write results as JSON to PATH')
    parser.add_argument('--trace', action='store_true',
                        help='Log process progress and CPU moves every tick (needs --verbose)')
    parser.add_argument('--verbose', action='store_true', help='Enable debug logging')
    return parser


def config_from_args(args: argparse.Namespace) -> SimulationConfig:
    return SimulationConfig(
        num_processes=args.processes,
        workload_length=args.workload_length,
        lookahead_window=args.lookahead,
        switch_penalty=args.switch_penalty,
        num_cpus=args.cpus,
        allocation_strategy=ALLOCATION_CHOICES[args.allocation],
        yield_strategy=YIELD_CHOICES[args.yield_strategy],
        seed=args.seed,
        max_ticks=args.max_ticks,
    )


def run_cli_simulation(config: SimulationConfig, trace: bool = False,
                       export_path: Optional[str] = None) -> int:
    """Run a single simulation and print its report."""
    logger = logging.getLogger("scheduler")

    engine = SchedulingEngine(config)
    if trace:
        renderer = LoggingRenderer()
        engine.set_callbacks(
            on_process_progress=renderer.on_process_progress,
            on_cpu_position=renderer.on_cpu_position
        )
    engine.initialize()
    result = engine.run()

    print(format_report(result))
    if export_path:
        DataExporter.export_json(result, export_path)
        logger.info(f"Results written to {export_path}")
    return 0


def run_comparison(config: SimulationConfig, export_path: Optional[str] = None) -> int:
    """Run every policy combination and print the comparison table."""
    logger = logging.getLogger("scheduler")

    batch = BatchSimulator(config)
    results = batch.run_comparison()

    print(f"Seed: {batch.config.seed}\n")
    print(batch.get_comparison_report())
    if export_path:
        DataExporter.export_json(results, export_path)
        logger.info(f"Results written to {export_path}")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main entry point for the application.

    Parses command-line arguments and runs the appropriate mode.
    """
    args = build_parser().parse_args(argv)
    setup_logging(LoggingConfig(verbose=args.verbose, level="WARNING"))

    try:
        config = config_from_args(args)
        config.validate()
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    print_banner()
    if args.compare:
        return run_comparison(config, export_path=args.export)
    return run_cli_simulation(config, trace=args.trace, export_path=args.export)


if __name__ == "__main__":
    sys.exit(main())
