"""
Validators Module for the Preemptive CPU Scheduling Simulator

This module provides the error taxonomy and input validation for the
simulation.

Error Categories:
1. ConfigurationError: invalid run parameters - raised before a run starts
2. InvariantViolation: a broken CPU<->process link or out-of-range progress
   pointer - indicates a bug in the engine, never recoverable
3. DegenerateMetricError: the completion-fairness metric cannot be computed
   for this run (e.g. every process shares priority 0)

Design Philosophy:
- Fail fast with clear error messages
- Collect every configuration problem in one pass
- Log validation warnings instead of raising them

Author: Student
Date: December 2024
"""

import logging
import math
from typing import Optional, Any, List, Sequence
from dataclasses import dataclass

from config import (
    AllocationStrategy,
    InstructionKind,
    YieldStrategy,
    SimulationConfig,
)


# Configure logger
logger = logging.getLogger(__name__)


# =============================================================================
# CUSTOM EXCEPTIONS
# =============================================================================

class ValidationError(Exception):
    """Base exception for validation errors."""

    def __init__(self, message: str, field: str = None, value: Any = None):
        self.field = field
        self.value = value
        self.message = message
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the error message with context."""
        if self.field and self.value is not None:
            return f"Validation error for '{self.field}' (value={self.value}): {self.message}"
        elif self.field:
            return f"Validation error for '{self.field}': {self.message}"
        return f"Validation error: {self.message}"


class ConfigurationError(ValidationError):
    """Exception for configuration-related validation errors."""
    pass


class InvariantViolation(ValidationError):
    """
    Exception for a broken engine invariant.

    Raised on double links, unlinking an idle CPU, an asymmetric
    CPU<->process link, or a progress pointer outside the workload.
    """
    pass


class DegenerateMetricError(ValidationError):
    """Exception for a metric that is undefined for the given run."""
    pass


# =============================================================================
# VALIDATION RESULT
# =============================================================================

@dataclass
class ValidationResult:
    """
    Result of a validation operation.

    Provides detailed information about validation success/failure.
    """
    is_valid: bool
    errors: List[str]
    warnings: List[str]
    field: Optional[str] = None

    def __bool__(self) -> bool:
        """Allow using ValidationResult in boolean context."""
        return self.is_valid

    @staticmethod
    def success() -> 'ValidationResult':
        """Create a successful validation result."""
        return ValidationResult(is_valid=True, errors=[], warnings=[])

    @staticmethod
    def failure(error: str, field: str = None) -> 'ValidationResult':
        """Create a failed validation result."""
        return ValidationResult(
            is_valid=False,
            errors=[error],
            warnings=[],
            field=field
        )

    def add_error(self, error: str):
        """Add an error to the result."""
        self.errors.append(error)
        self.is_valid = False

    def add_warning(self, warning: str):
        """Add a warning to the result."""
        self.warnings.append(warning)

    def merge(self, other: 'ValidationResult') -> 'ValidationResult':
        """Merge another validation result into this one."""
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        if self.field is None and not other.is_valid:
            self.field = other.field
        self.is_valid = self.is_valid and other.is_valid
        return self


# =============================================================================
# CONFIGURATION VALIDATORS
# =============================================================================

class ConfigValidator:
    """Validator for simulation configuration parameters."""

    MIN_PROCESSES = 1
    MIN_CPUS = 1
    MIN_WORKLOAD_LENGTH = 1
    MIN_LOOKAHEAD = 1
    MIN_SWITCH_PENALTY = 0
    WEIGHT_TOLERANCE = 1e-6

    @classmethod
    def validate_config(cls, config: SimulationConfig) -> ValidationResult:
        """
        Validate entire simulation configuration.

        Args:
            config: SimulationConfig to validate

        Returns:
            ValidationResult with all errors and warnings
        """
        result = ValidationResult.success()

        result.merge(cls.validate_positive_int(
            config.num_processes, "num_processes", cls.MIN_PROCESSES))
        result.merge(cls.validate_positive_int(
            config.num_cpus, "num_cpus", cls.MIN_CPUS))
        result.merge(cls.validate_positive_int(
            config.workload_length, "workload_length", cls.MIN_WORKLOAD_LENGTH))
        result.merge(cls.validate_positive_int(
            config.lookahead_window, "lookahead_window", cls.MIN_LOOKAHEAD))
        result.merge(cls.validate_positive_int(
            config.switch_penalty, "switch_penalty", cls.MIN_SWITCH_PENALTY))
        result.merge(cls.validate_strategies(config))
        result.merge(cls.validate_yield_weights(config))
        result.merge(cls.validate_run_control(config))

        # Cross-field validation
        if result and config.num_cpus > config.num_processes:
            result.add_warning(
                f"More CPUs ({config.num_cpus}) than processes "
                f"({config.num_processes}) - some CPUs will never be assigned"
            )
        if result and config.lookahead_window > config.workload_length:
            result.add_warning(
                f"lookahead_window ({config.lookahead_window}) exceeds "
                f"workload_length ({config.workload_length})"
            )

        for warning in result.warnings:
            logger.warning(warning)

        return result

    @classmethod
    def validate_positive_int(cls, value: int, name: str, minimum: int) -> ValidationResult:
        """Validate an integer parameter against a lower bound."""
        if isinstance(value, bool) or not isinstance(value, int):
            return ValidationResult.failure(
                f"{name} must be an integer, got {type(value).__name__}",
                name
            )
        if value < minimum:
            return ValidationResult.failure(
                f"{name} must be at least {minimum}, got {value}",
                name
            )
        return ValidationResult.success()

    @classmethod
    def validate_strategies(cls, config: SimulationConfig) -> ValidationResult:
        """Validate the strategy enums."""
        result = ValidationResult.success()
        if not isinstance(config.allocation_strategy, AllocationStrategy):
            result.merge(ValidationResult.failure(
                f"allocation_strategy must be an AllocationStrategy, "
                f"got {config.allocation_strategy!r}",
                "allocation_strategy"
            ))
        if not isinstance(config.yield_strategy, YieldStrategy):
            result.merge(ValidationResult.failure(
                f"yield_strategy must be a YieldStrategy, got {config.yield_strategy!r}",
                "yield_strategy"
            ))
        return result

    @classmethod
    def validate_yield_weights(cls, config: SimulationConfig) -> ValidationResult:
        """Validate that the yield weights are non-negative and sum to 1.0."""
        if not isinstance(config.yield_strategy, YieldStrategy):
            return ValidationResult.success()

        override = config.yield_weights_override
        if override is not None and len(override) != 3:
            return ValidationResult.failure(
                f"yield weights must have exactly 3 components, got {len(override)}",
                "yield_weights"
            )
        weights = config.yield_weights
        if any(isinstance(w, bool) or not isinstance(w, (int, float)) for w in weights):
            return ValidationResult.failure(
                f"yield weights must be numbers, got {tuple(weights)!r}",
                "yield_weights"
            )
        result = ValidationResult.success()
        if any(w < 0 for w in weights):
            result.add_error(f"yield weights must be non-negative, got {tuple(weights)}")
        total = sum(weights)
        if not math.isclose(total, 1.0, abs_tol=cls.WEIGHT_TOLERANCE):
            result.add_error(f"yield weights must sum to 1.0, got {total:.6f}")
        if not result:
            result.field = "yield_weights"
        return result

    @classmethod
    def validate_workloads(cls, workloads: Optional[Sequence[Sequence[InstructionKind]]],
                           priorities: Optional[Sequence[int]],
                           count: int) -> ValidationResult:
        """
        Validate caller-supplied workloads and priorities.

        Args:
            workloads: Explicit workload per process, or None
            priorities: Explicit priority per process, or None
            count: Number of processes the run will create

        Returns:
            ValidationResult with all errors
        """
        result = ValidationResult.success()

        if workloads is not None:
            if len(workloads) < cls.MIN_PROCESSES:
                result.merge(ValidationResult.failure(
                    "at least one workload is required", "workloads"
                ))
            for index, workload in enumerate(workloads):
                if len(workload) < cls.MIN_WORKLOAD_LENGTH:
                    result.merge(ValidationResult.failure(
                        f"workload {index} is empty", "workloads"
                    ))
                elif any(not isinstance(kind, InstructionKind) for kind in workload):
                    result.merge(ValidationResult.failure(
                        f"workload {index} holds entries that are not InstructionKind values",
                        "workloads"
                    ))

        if priorities is not None:
            if len(priorities) != count:
                result.merge(ValidationResult.failure(
                    f"expected {count} priorities, got {len(priorities)}", "priorities"
                ))
            if any(isinstance(p, bool) or not isinstance(p, int) for p in priorities):
                result.merge(ValidationResult.failure(
                    "priorities must be integers", "priorities"
                ))

        return result

    @classmethod
    def validate_run_control(cls, config: SimulationConfig) -> ValidationResult:
        """Validate seed, tick cap and run-length spread."""
        result = ValidationResult.success()
        if config.max_ticks is not None:
            result.merge(cls.validate_positive_int(config.max_ticks, "max_ticks", 1))
        if config.seed is not None:
            result.merge(cls.validate_positive_int(config.seed, "seed", 0))
        if not isinstance(config.run_length_std_dev, (int, float)) or config.run_length_std_dev < 0:
            result.merge(ValidationResult.failure(
                f"run_length_std_dev must be a non-negative number, "
                f"got {config.run_length_std_dev!r}",
                "run_length_std_dev"
            ))
        return result
