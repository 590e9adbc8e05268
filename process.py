"""
Process Module for the Preemptive CPU Scheduling Simulator

This module defines the Process class, a process walking through a synthetic
workload of alternating CPU and I/O instruction runs, and the generators that
create workloads and processes at simulation start.

Key OS Concepts Demonstrated:
- CPU bursts and I/O bursts alternate during a process's lifetime
- I/O waits elapse whether or not the process holds a CPU
- CPU instructions only retire on a CPU that has finished its context switch

Author: Student
Date: December 2024
"""

from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, Sequence
from enum import Enum

import numpy as np

from config import (
    InstructionKind,
    SimulationConfig,
    DEFAULT_SIMULATION_CONFIG
)
from validators import ConfigurationError, InvariantViolation


class ProcessState(Enum):
    """
    Lifecycle states of a simulated process.

    - ACTIVE_NO_CPU: alive, waiting for a CPU (I/O still progresses)
    - ACTIVE_WITH_CPU: alive and linked to a CPU
    - TERMINATED: workload finished, statistics recorded (absorbing)
    """
    ACTIVE_NO_CPU = "active (no cpu)"
    ACTIVE_WITH_CPU = "active (with cpu)"
    TERMINATED = "terminated"


# =============================================================================
# WORKLOAD GENERATOR
# =============================================================================

class WorkloadGenerator:
    """
    Produces fixed-length alternating CPU/IO instruction sequences.

    Run lengths are drawn from a normal distribution with mean
    ``workload_length / 10`` and a fixed standard deviation, rounded to the
    nearest integer and floored at 1. The first run is always CPU.
    """

    def __init__(self, workload_length: int, run_length_std_dev: float = 3.0,
                 rng: Optional[np.random.Generator] = None):
        """
        Initialize the generator.

        Args:
            workload_length: Number of instructions per workload
            run_length_std_dev: Standard deviation of sampled run lengths
            rng: Random source (a fresh default_rng if None)
        """
        self.workload_length = workload_length
        self.average_run_length = workload_length / 10
        self.run_length_std_dev = run_length_std_dev
        self.rng = rng if rng is not None else np.random.default_rng()

    def sample_run_length(self) -> int:
        """Draw one run length (always >= 1)."""
        sample = self.rng.normal(self.average_run_length, self.run_length_std_dev)
        return max(1, int(round(sample)))

    def run_boundaries(self) -> List[int]:
        """
        Cumulative indices at which the instruction kind toggles.

        The last boundary is >= workload_length; anything past the end is
        discarded when the workload is filled.
        """
        boundaries: List[int] = []
        position = 0
        while position < self.workload_length:
            position += self.sample_run_length()
            boundaries.append(position)
        return boundaries

    def generate(self) -> List[InstructionKind]:
        """
        Generate one workload.

        Returns:
            List of InstructionKind of length workload_length
        """
        boundaries = self.run_boundaries()
        workload: List[InstructionKind] = []
        kind = InstructionKind.CPU
        next_boundary = 0

        for index in range(self.workload_length):
            if index == boundaries[next_boundary]:
                kind = InstructionKind.IO if kind is InstructionKind.CPU else InstructionKind.CPU
                next_boundary += 1
            workload.append(kind)

        return workload


# =============================================================================
# PROCESS
# =============================================================================

@dataclass(eq=False)
class Process:
    """
    Represents a process in the scheduling simulation.

    The CPU link (``cpu_id``) is one side of a two-sided reference; it is only
    changed through ProcessorManager.assign/release, which updates the CPU
    record in the same step.

    Attributes:
        pid (int): Stable process identifier, assigned at creation
        workload (List[InstructionKind]): Instruction kinds to walk through
        priority (int): Lower value = higher priority; defaults to pid
        progress_pointer (int): Index of the next instruction (0..len(workload))
        time_on_cpu (int): Consecutive ticks on the current CPU
        yielded_this_tick (bool): True only during the tick the process yields
        cpu_id (Optional[int]): CPU currently held, if any
        cpu_instructions_completed (int): CPU instructions retired so far
        completion_tick (Optional[int]): Tick at which the workload finished
    """

    pid: int
    workload: List[InstructionKind] = field(default_factory=list)
    priority: Optional[int] = None
    progress_pointer: int = 0
    time_on_cpu: int = 0
    yielded_this_tick: bool = False
    cpu_id: Optional[int] = None
    cpu_instructions_completed: int = 0
    completion_tick: Optional[int] = None
    terminated: bool = False

    def __post_init__(self):
        if self.priority is None:
            self.priority = self.pid
        self.workload = list(self.workload)
        if not 0 <= self.progress_pointer <= len(self.workload):
            raise InvariantViolation(
                "progress pointer outside workload",
                field="progress_pointer",
                value=self.progress_pointer
            )

    def __str__(self) -> str:
        return (
            f"Process[PID={self.pid}, State={self.state.name}, "
            f"Progress={self.progress_pointer}/{len(self.workload)}, "
            f"Priority={self.priority}, CPU={self.cpu_id}]"
        )

    # =========================================================================
    # Query Methods
    # =========================================================================

    @property
    def state(self) -> ProcessState:
        if self.terminated:
            return ProcessState.TERMINATED
        if self.cpu_id is not None:
            return ProcessState.ACTIVE_WITH_CPU
        return ProcessState.ACTIVE_NO_CPU

    @property
    def workload_length(self) -> int:
        return len(self.workload)

    def has_cpu(self) -> bool:
        return self.cpu_id is not None

    def is_complete(self) -> bool:
        """True once the progress pointer has reached the end of the workload."""
        return self.progress_pointer >= len(self.workload)

    def current_instruction(self) -> Optional[InstructionKind]:
        """Instruction kind at the progress pointer, or None at workload end."""
        if self.is_complete():
            return None
        return self.workload[self.progress_pointer]

    def upcoming_instructions(self, window: int) -> List[InstructionKind]:
        """Up to ``window`` instructions starting at the progress pointer."""
        return self.workload[self.progress_pointer:self.progress_pointer + window]

    def remaining_workload(self) -> List[InstructionKind]:
        """Instructions from the progress pointer to the end (render snapshot)."""
        return self.workload[self.progress_pointer:]

    def get_progress(self) -> float:
        """
        Get execution progress as a fraction.

        Returns:
            Float between 0.0 and 1.0
        """
        if not self.workload:
            return 1.0
        return self.progress_pointer / len(self.workload)

    # =========================================================================
    # Tick Methods
    # =========================================================================

    def advance_one_tick(self, cpu=None) -> bool:
        """
        Advance through the workload by at most one instruction.

        I/O instructions always advance. A CPU instruction advances only when
        the process holds ``cpu`` and that CPU has finished switching.
        CPU linkage is never changed here.

        Args:
            cpu: The CPU this process holds, or None

        Returns:
            True if a CPU instruction was retired this tick
        """
        if self.terminated:
            raise InvariantViolation(f"P{self.pid} advanced after termination", field="state")
        if self.is_complete():
            raise InvariantViolation(
                f"P{self.pid} advanced past its workload",
                field="progress_pointer",
                value=self.progress_pointer
            )
        held_id = cpu.cpu_id if cpu is not None else None
        if held_id != self.cpu_id:
            raise InvariantViolation(
                f"P{self.pid} holds CPU {self.cpu_id} but was advanced with CPU {held_id}",
                field="cpu_id"
            )

        if self.current_instruction() is InstructionKind.IO:
            self.progress_pointer += 1
            return False

        if cpu is not None and cpu.process_id == self.pid and cpu.is_ready():
            self.progress_pointer += 1
            self.cpu_instructions_completed += 1
            return True

        # Blocked on a CPU instruction
        return False

    def overall_yield_probability(self, policy, active_processes: Sequence['Process']) -> float:
        """Composite yield probability; delegates to the YieldPolicy."""
        return policy.overall_probability(self, active_processes)

    def mark_yielded(self) -> None:
        """Record a voluntary CPU release for the current tick."""
        self.yielded_this_tick = True
        self.time_on_cpu = 0

    def end_tick(self) -> None:
        self.yielded_this_tick = False

    def finalize(self, current_tick: int, statistics=None) -> None:
        """
        Terminate the process and record its final statistics.

        Must run exactly once, after the CPU link has been released.

        Args:
            current_tick: Tick at which the workload finished
            statistics: Optional StatisticsCollector receiving the record
        """
        if self.terminated:
            raise InvariantViolation(f"P{self.pid} finalized twice", field="state")
        if self.cpu_id is not None:
            raise InvariantViolation(
                f"P{self.pid} finalized while still holding CPU {self.cpu_id}",
                field="cpu_id"
            )
        self.terminated = True
        self.completion_tick = current_tick
        if statistics is not None:
            statistics.record_completion(
                self.pid,
                ticks=current_tick,
                priority=self.priority,
                cpu_instructions=self.cpu_instructions_completed
            )

    # =========================================================================
    # CPU link (called by ProcessorManager only)
    # =========================================================================

    def _attach_cpu(self, cpu_id: int) -> None:
        if self.cpu_id is not None:
            raise InvariantViolation(
                f"P{self.pid} already holds CPU {self.cpu_id}",
                field="cpu_id",
                value=cpu_id
            )
        self.cpu_id = cpu_id
        self.time_on_cpu = 0

    def _detach_cpu(self) -> None:
        if self.cpu_id is None:
            raise InvariantViolation(f"P{self.pid} holds no CPU", field="cpu_id")
        self.cpu_id = None

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert process to dictionary for serialization or logging.

        Returns:
            Dictionary with all process information
        """
        return {
            'pid': self.pid,
            'priority': self.priority,
            'state': self.state.name,
            'workload_length': len(self.workload),
            'progress_pointer': self.progress_pointer,
            'time_on_cpu': self.time_on_cpu,
            'cpu_id': self.cpu_id,
            'cpu_instructions_completed': self.cpu_instructions_completed,
            'completion_tick': self.completion_tick,
        }


# =============================================================================
# PROCESS GENERATOR
# =============================================================================

class ProcessGenerator:
    """
    Factory class creating the process population for a run.

    Every process gets a freshly generated workload; its pid doubles as its
    default priority.
    """

    def __init__(self, config: SimulationConfig = None,
                 rng: Optional[np.random.Generator] = None):
        """
        Initialize the process generator with configuration.

        Args:
            config: SimulationConfig instance (uses default if None)
            rng: Random source shared with the workload generator
        """
        self.config = config or DEFAULT_SIMULATION_CONFIG
        self.workload_generator = WorkloadGenerator(
            self.config.workload_length,
            self.config.run_length_std_dev,
            rng=rng
        )
        self._next_pid = 0

    def reset(self) -> None:
        """Reset the PID counter for a new simulation run."""
        self._next_pid = 0

    def generate_process(self, workload: Optional[Sequence[InstructionKind]] = None,
                         priority: Optional[int] = None) -> Process:
        """
        Generate a single process.

        Args:
            workload: Explicit workload (generated if None)
            priority: Explicit priority (pid if None)

        Returns:
            New Process instance
        """
        if workload is None:
            workload = self.workload_generator.generate()
        process = Process(pid=self._next_pid, workload=list(workload), priority=priority)
        self._next_pid += 1
        return process

    def generate_processes(self, count: Optional[int] = None,
                           workloads: Optional[Sequence[Sequence[InstructionKind]]] = None,
                           priorities: Optional[Sequence[int]] = None) -> List[Process]:
        """
        Generate the full population.

        Args:
            count: Number of processes (config default if None)
            workloads: Optional explicit workload per process
            priorities: Optional explicit priority per process

        Returns:
            List of Process instances ordered by pid

        Raises:
            ConfigurationError: If workloads or priorities do not match ``count``
        """
        if count is None:
            count = len(workloads) if workloads is not None else self.config.num_processes
        if workloads is not None and len(workloads) != count:
            raise ConfigurationError(
                f"expected {count} workloads, got {len(workloads)}", field="workloads"
            )
        if priorities is not None and len(priorities) != count:
            raise ConfigurationError(
                f"expected {count} priorities, got {len(priorities)}", field="priorities"
            )

        return [
            self.generate_process(
                workload=workloads[i] if workloads is not None else None,
                priority=priorities[i] if priorities is not None else None
            )
            for i in range(count)
        ]
