"""
Configuration Module for the Preemptive CPU Scheduling Simulator

This module contains all configuration constants and parameters used throughout
the simulation. A configuration object is read once before a run starts and is
treated as immutable for the duration of that run.

Configurable aspects of a run:
- Workload shape (process count, workload length, run-length spread)
- Scheduling behaviour (free-CPU allocation strategy, yield weighting)
- Hardware model (CPU count, context-switch penalty)

Author: Student
Date: December 2024
"""

from enum import Enum
from dataclasses import dataclass
from typing import Dict, Any, NamedTuple, Optional


# =============================================================================
# ENUMERATIONS - Define categorical constants
# =============================================================================

class InstructionKind(Enum):
    """
    Kind of a single workload instruction.

    - CPU: needs a ready CPU to make progress
    - IO: progresses every tick, with or without a CPU
    """
    CPU = "CPU"
    IO = "IO"


class AllocationStrategy(Enum):
    """
    Strategies for handing an idle CPU to a waiting process.

    - HIGHEST_PRIORITY: numerically lowest priority value wins (ties -> lowest id)
    - RANDOM: uniform pick among the eligible processes
    """
    HIGHEST_PRIORITY = "Highest Priority"
    RANDOM = "Random"


class YieldStrategy(Enum):
    """
    Named presets for the yield-probability weight triple.

    Each preset weights (priority, lookahead, time-on-cpu) and sums to 1.0.
    """
    EQUAL_WEIGHT = "Equal Weight"
    FAVOR_PRIORITY = "Favor Priority"
    FAVOR_LOOKAHEAD = "Favor Lookahead"
    FAVOR_TIME_ON_CPU = "Favor Time On CPU"


class YieldWeights(NamedTuple):
    """Weights applied to the three yield sub-probabilities."""
    priority: float
    lookahead: float
    time_on_cpu: float

    def total(self) -> float:
        return self.priority + self.lookahead + self.time_on_cpu


YIELD_STRATEGY_WEIGHTS: Dict[YieldStrategy, YieldWeights] = {
    YieldStrategy.EQUAL_WEIGHT: YieldWeights(0.34, 0.33, 0.33),
    YieldStrategy.FAVOR_PRIORITY: YieldWeights(0.6, 0.2, 0.2),
    YieldStrategy.FAVOR_LOOKAHEAD: YieldWeights(0.2, 0.6, 0.2),
    YieldStrategy.FAVOR_TIME_ON_CPU: YieldWeights(0.2, 0.2, 0.6),
}


# =============================================================================
# SIMULATION CONFIGURATION
# =============================================================================

@dataclass
class SimulationConfig:
    """
    Main configuration class for the simulation.

    Attributes:
        num_processes: Number of processes created at simulation start
        workload_length: Instructions in every process's workload
        lookahead_window: Upcoming instructions inspected by the lookahead factor
        switch_penalty: Ticks a CPU stays unusable after a new process is linked
        num_cpus: Size of the CPU pool
        allocation_strategy: How idle CPUs pick a waiting process
        yield_strategy: Preset name for the yield weight triple
        yield_weights_override: Custom weights replacing the preset (must sum to 1.0)
        run_length_std_dev: Standard deviation of CPU/IO run lengths
        seed: Seed for the run's random source (None for non-deterministic runs)
        max_ticks: Optional harness-imposed cap on the number of ticks
        check_invariants: Verify the CPU<->process bijection after mutating phases
    """
    # Workload Configuration
    num_processes: int = 10
    workload_length: int = 100
    run_length_std_dev: float = 3.0

    # Scheduling Configuration
    lookahead_window: int = 5
    switch_penalty: int = 1
    allocation_strategy: AllocationStrategy = AllocationStrategy.HIGHEST_PRIORITY
    yield_strategy: YieldStrategy = YieldStrategy.EQUAL_WEIGHT
    yield_weights_override: Optional[YieldWeights] = None

    # Hardware Configuration
    num_cpus: int = 1

    # Run Control
    seed: Optional[int] = None
    max_ticks: Optional[int] = None
    check_invariants: bool = True

    @property
    def yield_weights(self) -> YieldWeights:
        """Resolve the weight triple used by the yield policy."""
        if self.yield_weights_override is not None:
            return YieldWeights(*self.yield_weights_override)
        return YIELD_STRATEGY_WEIGHTS[self.yield_strategy]

    @property
    def average_run_length(self) -> float:
        """Mean length of a CPU or IO run within a workload."""
        return self.workload_length / 10

    def validate(self) -> bool:
        """
        Validate configuration parameters.

        Returns:
            bool: True if configuration is valid

        Raises:
            ConfigurationError: If any parameter is invalid
        """
        # Lazy import to avoid a circular dependency with validators
        from validators import ConfigValidator, ConfigurationError

        result = ConfigValidator.validate_config(self)
        if not result:
            raise ConfigurationError("; ".join(result.errors), field=result.field)
        return True

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert configuration to dictionary for serialization.

        Returns:
            Dict containing all configuration parameters
        """
        return {
            'num_processes': self.num_processes,
            'workload_length': self.workload_length,
            'run_length_std_dev': self.run_length_std_dev,
            'lookahead_window': self.lookahead_window,
            'switch_penalty': self.switch_penalty,
            'allocation_strategy': self.allocation_strategy.value,
            'yield_strategy': self.yield_strategy.value,
            'yield_weights': list(self.yield_weights),
            'yield_weights_override': (
                list(self.yield_weights_override)
                if self.yield_weights_override is not None else None
            ),
            'num_cpus': self.num_cpus,
            'seed': self.seed,
            'max_ticks': self.max_ticks,
            'check_invariants': self.check_invariants,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SimulationConfig':
        """
        Create configuration from dictionary.

        Args:
            data: Dictionary containing configuration parameters

        Returns:
            SimulationConfig instance
        """
        config = cls()
        for key, value in data.items():
            if key == 'allocation_strategy':
                value = AllocationStrategy(value)
            elif key == 'yield_strategy':
                value = YieldStrategy(value)
            elif key == 'yield_weights_override' and value is not None:
                value = YieldWeights(*value)
            elif key == 'yield_weights':
                # Derived from yield_strategy / override
                continue
            if hasattr(config, key):
                setattr(config, key, value)
        return config


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

@dataclass
class LoggingConfig:
    """
    Configuration for the logging system.

    Logging is used for:
    - Tracing yield and allocation decisions tick by tick
    - Reporting degenerate metrics
    - Recording run summaries
    """
    log_to_console: bool = True
    log_to_file: bool = False
    log_file_path: str = "simulation.log"
    level: str = "INFO"

    # Log format
    log_format: str = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"

    # If True, per-tick decisions are logged at DEBUG level
    verbose: bool = False


# =============================================================================
# DEFAULT INSTANCES
# =============================================================================

DEFAULT_SIMULATION_CONFIG = SimulationConfig()
DEFAULT_LOGGING_CONFIG = LoggingConfig()


# =============================================================================
# CONSTANTS
# =============================================================================

VERSION = "1.0.0"
APP_NAME = "Preemptive CPU Scheduling Simulator"
AUTHOR = "Student"

# Divisor for the time-on-cpu yield factor
TIME_ON_CPU_CAP = 10

# Priority factor range: rank 0 -> LOW, lowest rank -> HIGH
PRIORITY_FACTOR_LOW = 0.1
PRIORITY_FACTOR_HIGH = 0.9

ALLOCATION_STRATEGY_DESCRIPTIONS = {
    AllocationStrategy.HIGHEST_PRIORITY: """
Highest Priority Allocation:
- An idle CPU is granted to the waiting process with the lowest priority value
- Ties go to the lowest process id
- A process that yielded this tick is never re-granted a CPU in the same tick
    """.strip(),

    AllocationStrategy.RANDOM: """
Random Allocation:
- An idle CPU is granted to a waiting process chosen uniformly at random
- Ignores priority entirely
    """.strip(),
}

YIELD_STRATEGY_DESCRIPTIONS = {
    YieldStrategy.EQUAL_WEIGHT: "Priority, lookahead and time-on-cpu weighted equally (0.34/0.33/0.33)",
    YieldStrategy.FAVOR_PRIORITY: "Low-priority processes give up the CPU more readily (0.6/0.2/0.2)",
    YieldStrategy.FAVOR_LOOKAHEAD: "Processes about to do I/O give up the CPU more readily (0.2/0.6/0.2)",
    YieldStrategy.FAVOR_TIME_ON_CPU: "Long-running holders give up the CPU more readily (0.2/0.2/0.6)",
}
