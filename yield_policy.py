"""
Yield Policy Module for the Preemptive CPU Scheduling Simulator

Decides whether a CPU-holding process voluntarily releases its CPU this tick.

The yield probability is a weighted sum of three factors:

    P(yield) = w_priority  * priority_factor
             + w_lookahead * lookahead_factor
             + w_time      * time_on_cpu_factor

- priority_factor: 0.1 for the highest-priority active process up to 0.9 for
  the lowest, evenly spaced; 0 when the process is the only one left
- lookahead_factor: share of I/O instructions in the next few instructions
- time_on_cpu_factor: ticks held / 10, deliberately unbounded

The composite is compared against a uniform draw in [0, 1). It is never
clamped, so any composite >= 1 is a certain yield.

Author: Student
Date: December 2024
"""

import logging
from typing import Optional, Sequence

import numpy as np

from config import (
    InstructionKind,
    YieldWeights,
    TIME_ON_CPU_CAP,
    PRIORITY_FACTOR_LOW,
    PRIORITY_FACTOR_HIGH,
)
from process import Process


logger = logging.getLogger(__name__)


class YieldPolicy:
    """
    Computes yield probabilities and draws yield decisions.

    Priority ties are broken by pid: among equal priorities the lower pid
    ranks higher.
    """

    def __init__(self, weights: YieldWeights, lookahead_window: int,
                 rng: Optional[np.random.Generator] = None):
        """
        Args:
            weights: (priority, lookahead, time_on_cpu) weights summing to 1.0
            lookahead_window: Number of upcoming instructions inspected
            rng: Random source for yield draws
        """
        self.weights = YieldWeights(*weights)
        self.lookahead_window = lookahead_window
        self.rng = rng if rng is not None else np.random.default_rng()

    @staticmethod
    def priority_rank(process: Process, active_processes: Sequence[Process]) -> int:
        """0-based rank of ``process`` by (priority, pid) among the active set."""
        ordered = sorted(active_processes, key=lambda p: (p.priority, p.pid))
        for rank, candidate in enumerate(ordered):
            if candidate.pid == process.pid:
                return rank
        raise ValueError(f"P{process.pid} is not in the active process set")

    def priority_factor(self, process: Process, active_processes: Sequence[Process]) -> float:
        count = len(active_processes)
        if count <= 1:
            return 0.0
        rank = self.priority_rank(process, active_processes)
        step = (PRIORITY_FACTOR_HIGH - PRIORITY_FACTOR_LOW) / (count - 1)
        return PRIORITY_FACTOR_LOW + rank * step

    def lookahead_factor(self, process: Process) -> float:
        # Never reads past the end of the workload
        window = process.upcoming_instructions(self.lookahead_window)
        if not window:
            return 0.0
        io_count = sum(1 for kind in window if kind is InstructionKind.IO)
        return io_count / len(window)

    @staticmethod
    def time_on_cpu_factor(process: Process) -> float:
        return process.time_on_cpu / TIME_ON_CPU_CAP

    def overall_probability(self, process: Process, active_processes: Sequence[Process]) -> float:
        """
        Weighted composite of the three factors.

        May exceed 1.0 for processes that have held a CPU for a long time.
        """
        return (
            self.weights.priority * self.priority_factor(process, active_processes)
            + self.weights.lookahead * self.lookahead_factor(process)
            + self.weights.time_on_cpu * self.time_on_cpu_factor(process)
        )

    def should_yield(self, process: Process, active_processes: Sequence[Process]) -> bool:
        """Draw once and decide whether ``process`` releases its CPU."""
        probability = self.overall_probability(process, active_processes)
        draw = self.rng.random()
        decision = draw < probability
        logger.debug(
            f"P{process.pid} yield check: p={probability:.3f} draw={draw:.3f} -> "
            f"{'yield' if decision else 'keep'}"
        )
        return decision
