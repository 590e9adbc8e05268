"""
Processor Module for the Preemptive CPU Scheduling Simulator

This module defines the CPU state machine and the ProcessorManager that owns
the CPU pool.

Key OS Concepts Demonstrated:
- Context switches make a CPU unusable for a configurable number of ticks
- A CPU serves at most one process and a process holds at most one CPU
- Idle accounting: a CPU linked to a process that is mid-switch or doing
  I/O is not doing useful work

The CPU<->process link is two-sided. Both sides are only ever changed through
ProcessorManager.assign() and ProcessorManager.release().

Author: Student
Date: December 2024
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional

from config import SimulationConfig, DEFAULT_SIMULATION_CONFIG
from validators import InvariantViolation


logger = logging.getLogger(__name__)


@dataclass(eq=False)
class CPU:
    """
    A single simulated CPU.

    States:
    - Idle: ``process_id`` is None
    - Busy: ``process_id`` is set

    Attributes:
        cpu_id (int): Stable CPU identifier
        process_id (Optional[int]): Process currently served
        switch_state (int): Ticks remaining before the CPU is usable (>= 0)
        idle_ticks (int): Ticks spent assigned but not doing useful work
    """

    cpu_id: int
    process_id: Optional[int] = None
    switch_state: int = 0
    idle_ticks: int = 0

    def __str__(self) -> str:
        return (
            f"CPU[ID={self.cpu_id}, Process={self.process_id}, "
            f"Switch={self.switch_state}, Idle={self.idle_ticks}]"
        )

    def is_idle(self) -> bool:
        return self.process_id is None

    def is_busy(self) -> bool:
        return self.process_id is not None

    def is_ready(self) -> bool:
        """True once any pending context switch has completed."""
        return self.switch_state == 0

    def tick_switch_state(self) -> None:
        """Count the context switch down by one tick, floored at 0."""
        if self.switch_state > 0:
            self.switch_state -= 1

    def link(self, process_id: int, switch_penalty: int) -> None:
        """
        Attach a process to this CPU and start the context switch.

        Only valid on an idle CPU. Use ProcessorManager.assign() so the
        process side is updated too.
        """
        if self.process_id is not None:
            raise InvariantViolation(
                f"CPU {self.cpu_id} already serves P{self.process_id}",
                field="process_id",
                value=process_id
            )
        self.process_id = process_id
        self.switch_state = switch_penalty

    def unlink(self) -> int:
        """
        Detach the current process.

        Returns:
            The pid that was served
        """
        if self.process_id is None:
            raise InvariantViolation(f"CPU {self.cpu_id} is already idle", field="process_id")
        process_id = self.process_id
        self.process_id = None
        return process_id

    def record_idle_tick(self) -> None:
        self.idle_ticks += 1

    def to_dict(self):
        return {
            'cpu_id': self.cpu_id,
            'process_id': self.process_id,
            'switch_state': self.switch_state,
            'idle_ticks': self.idle_ticks,
        }


class ProcessorManager:
    """
    Owns the CPU pool and the CPU<->process link.

    CPUs are created once and persist for the whole run.
    """

    def __init__(self, num_processors: int = None, config: SimulationConfig = None):
        """
        Initialize the CPU pool.

        Args:
            num_processors: Number of CPUs (config.num_cpus if None)
            config: Simulation configuration
        """
        self.config = config or DEFAULT_SIMULATION_CONFIG
        if num_processors is None:
            num_processors = self.config.num_cpus
        self.processors: List[CPU] = [CPU(cpu_id=i) for i in range(num_processors)]
        self._by_id: Dict[int, CPU] = {cpu.cpu_id: cpu for cpu in self.processors}

    def __iter__(self) -> Iterator[CPU]:
        return iter(self.processors)

    def __len__(self) -> int:
        return len(self.processors)

    def get(self, cpu_id: Optional[int]) -> Optional[CPU]:
        if cpu_id is None:
            return None
        return self._by_id[cpu_id]

    def idle_processors(self) -> List[CPU]:
        return [cpu for cpu in self.processors if cpu.is_idle()]

    def busy_processors(self) -> List[CPU]:
        return [cpu for cpu in self.processors if cpu.is_busy()]

    def assign(self, cpu: CPU, process, switch_penalty: Optional[int] = None) -> None:
        """
        Link ``process`` to ``cpu`` on both sides.

        Args:
            cpu: An idle CPU
            process: A live process holding no CPU
            switch_penalty: Initial switch state (config.switch_penalty if None)
        """
        if switch_penalty is None:
            switch_penalty = self.config.switch_penalty
        if process.terminated:
            raise InvariantViolation(f"P{process.pid} is terminated", field="state")
        if process.cpu_id is not None:
            raise InvariantViolation(
                f"P{process.pid} already holds CPU {process.cpu_id}",
                field="cpu_id",
                value=cpu.cpu_id
            )
        cpu.link(process.pid, switch_penalty)
        process._attach_cpu(cpu.cpu_id)
        logger.debug(f"CPU {cpu.cpu_id} <- P{process.pid} (switch={switch_penalty})")

    def release(self, process) -> Optional[CPU]:
        """
        Unlink ``process`` from its CPU on both sides.

        Returns:
            The CPU that was released, or None if the process held none
        """
        if process.cpu_id is None:
            return None
        cpu = self.get(process.cpu_id)
        if cpu.process_id != process.pid:
            raise InvariantViolation(
                f"P{process.pid} points at CPU {cpu.cpu_id} which serves P{cpu.process_id}",
                field="cpu_id"
            )
        cpu.unlink()
        process._detach_cpu()
        logger.debug(f"CPU {cpu.cpu_id} released by P{process.pid}")
        return cpu

    def check_links(self, processes: Iterable) -> None:
        """
        Verify the CPU<->process bijection.

        Raises:
            InvariantViolation: If any link is one-sided or shared
        """
        by_pid = {p.pid: p for p in processes}
        seen_pids = set()

        for cpu in self.processors:
            if cpu.switch_state < 0:
                raise InvariantViolation(
                    f"CPU {cpu.cpu_id} has negative switch state",
                    field="switch_state",
                    value=cpu.switch_state
                )
            if cpu.process_id is None:
                continue
            if cpu.process_id in seen_pids:
                raise InvariantViolation(
                    f"P{cpu.process_id} is served by more than one CPU", field="process_id"
                )
            seen_pids.add(cpu.process_id)
            process = by_pid.get(cpu.process_id)
            if process is None:
                raise InvariantViolation(
                    f"CPU {cpu.cpu_id} serves unknown or terminated P{cpu.process_id}",
                    field="process_id"
                )
            if process.cpu_id != cpu.cpu_id:
                raise InvariantViolation(
                    f"CPU {cpu.cpu_id} serves P{process.pid} but P{process.pid} "
                    f"points at CPU {process.cpu_id}",
                    field="cpu_id"
                )

        for process in by_pid.values():
            if process.cpu_id is not None and process.pid not in seen_pids:
                raise InvariantViolation(
                    f"P{process.pid} points at CPU {process.cpu_id} which does not serve it",
                    field="cpu_id"
                )
