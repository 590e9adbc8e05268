"""
Allocation Module for the Preemptive CPU Scheduling Simulator

This module implements the free-CPU allocation strategies using the Strategy
design pattern. Each strategy decides which waiting process an idle CPU is
granted to.

Allocation Strategies:
1. Highest Priority - numerically lowest priority value wins
2. Random - uniform pick among eligible processes

Allocation Rules:
- Candidates are live processes holding no CPU that did not yield this tick,
  so a process cannot release a CPU and take one back in the same tick
- Idle CPUs are served one at a time; each grant removes the process from
  the candidate pool before the next idle CPU is considered
- An idle CPU with no candidates stays idle (no switch-state change)

Design Pattern: Strategy Pattern
- AllocationPolicy is the abstract base
- Concrete policies implement select()
- AllocationPolicyFactory maps AllocationStrategy values to policies

Author: Student
Date: December 2024
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

import numpy as np

from config import (
    AllocationStrategy,
    SimulationConfig,
    DEFAULT_SIMULATION_CONFIG,
    ALLOCATION_STRATEGY_DESCRIPTIONS
)
from process import Process
from processor import CPU, ProcessorManager


logger = logging.getLogger(__name__)


@dataclass
class AllocationRecord:
    """
    Record of a CPU grant.

    Tracks allocations for analysis and visualization.
    """
    process_id: int
    cpu_id: int
    tick: int
    switch_penalty: int
    strategy: str


class AllocationPolicy(ABC):
    """
    Abstract base class for free-CPU allocation strategies.

    Subclasses implement select(); the sequential, pool-shrinking allocation
    loop lives here so every strategy obeys the same ordering rules.
    """

    def __init__(self, config: SimulationConfig = None,
                 rng: Optional[np.random.Generator] = None):
        """
        Initialize the allocation policy.

        Args:
            config: Simulation configuration
            rng: Random source (only used by randomized strategies)
        """
        self.config = config or DEFAULT_SIMULATION_CONFIG
        self.rng = rng if rng is not None else np.random.default_rng()
        self.allocation_history: List[AllocationRecord] = []
        self.allocation_count = 0

    @property
    @abstractmethod
    def strategy_type(self) -> AllocationStrategy:
        """Return the strategy enum."""
        pass

    @property
    def name(self) -> str:
        return self.strategy_type.value

    @abstractmethod
    def select(self, candidates: List[Process]) -> Optional[Process]:
        """
        Choose one process from a non-empty candidate list.

        Args:
            candidates: Eligible processes, ordered by pid

        Returns:
            The chosen process
        """
        pass

    @staticmethod
    def eligible_candidates(processes: Iterable[Process]) -> List[Process]:
        """Live processes with no CPU that did not yield this tick, ordered by pid."""
        return sorted(
            (p for p in processes
             if not p.terminated and p.cpu_id is None and not p.yielded_this_tick),
            key=lambda p: p.pid
        )

    def allocate(self, processors: ProcessorManager, processes: Iterable[Process],
                 current_tick: int, switch_penalty: Optional[int] = None,
                 on_assign: Optional[Callable[[CPU, Process], None]] = None) -> List[AllocationRecord]:
        """
        Grant every idle CPU to a candidate, one CPU at a time.

        Args:
            processors: The CPU pool
            processes: All live processes
            current_tick: Current simulation tick
            switch_penalty: Switch state for new links (config value if None)
            on_assign: Called after each successful grant

        Returns:
            AllocationRecord for each grant made this call
        """
        if switch_penalty is None:
            switch_penalty = self.config.switch_penalty

        pool = self.eligible_candidates(processes)
        records: List[AllocationRecord] = []

        for cpu in processors.idle_processors():
            if not pool:
                break
            chosen = self.select(pool)
            if chosen is None:
                continue
            pool.remove(chosen)
            processors.assign(cpu, chosen, switch_penalty)

            record = AllocationRecord(
                process_id=chosen.pid,
                cpu_id=cpu.cpu_id,
                tick=current_tick,
                switch_penalty=switch_penalty,
                strategy=self.name
            )
            records.append(record)
            self.allocation_history.append(record)
            self.allocation_count += 1
            logger.debug(f"[T={current_tick}] {self.name}: CPU {cpu.cpu_id} -> P{chosen.pid}")

            if on_assign is not None:
                on_assign(cpu, chosen)

        return records

    def reset(self):
        """Reset the policy state."""
        self.allocation_history.clear()
        self.allocation_count = 0


class HighestPriorityPolicy(AllocationPolicy):
    """
    Highest Priority Allocation

    Grants the CPU to the candidate with the numerically lowest priority.
    Ties go to the lowest pid, which keeps runs reproducible.
    """

    @property
    def strategy_type(self) -> AllocationStrategy:
        return AllocationStrategy.HIGHEST_PRIORITY

    def select(self, candidates: List[Process]) -> Optional[Process]:
        if not candidates:
            return None
        return min(candidates, key=lambda p: (p.priority, p.pid))


class RandomPolicy(AllocationPolicy):
    """
    Random Allocation

    Grants the CPU to a candidate chosen uniformly at random.
    """

    @property
    def strategy_type(self) -> AllocationStrategy:
        return AllocationStrategy.RANDOM

    def select(self, candidates: List[Process]) -> Optional[Process]:
        if not candidates:
            return None
        return candidates[int(self.rng.integers(len(candidates)))]


class AllocationPolicyFactory:
    """
    Factory class for creating allocation policy instances.

    Uses the Factory Pattern to create the appropriate policy
    based on the strategy enum.
    """

    _policies = {
        AllocationStrategy.HIGHEST_PRIORITY: HighestPriorityPolicy,
        AllocationStrategy.RANDOM: RandomPolicy,
    }

    @classmethod
    def create(cls, strategy: AllocationStrategy,
               config: SimulationConfig = None,
               rng: Optional[np.random.Generator] = None) -> AllocationPolicy:
        """
        Create an allocation policy instance.

        Raises:
            ValueError: If the strategy is not supported
        """
        policy_class = cls._policies.get(strategy)
        if policy_class is None:
            raise ValueError(f"Unknown allocation strategy: {strategy}")
        return policy_class(config, rng=rng)

    @staticmethod
    def get_all_strategies() -> List[AllocationStrategy]:
        return list(AllocationStrategy)

    @staticmethod
    def get_strategy_descriptions() -> Dict[str, str]:
        return {
            strategy.value: description
            for strategy, description in ALLOCATION_STRATEGY_DESCRIPTIONS.items()
        }
