"""
Simulation Engine Module for the Preemptive CPU Scheduling Simulator

This module provides the scheduling engine that orchestrates processes, CPUs,
the yield policy, the allocation policy and statistics collection.

The simulation is discrete and single-threaded. Every tick runs six phases
in a fixed order:
1. Workload advance: every process advances; finished processes release
   their CPU, record statistics and are removed
2. Statistics: throughput, time-on-cpu, CPU idle accounting, switch countdown
3. Termination check: stop once no process is left
4. Yield: CPU holders on ready CPUs may release their CPU (only while more
   than one process is alive); decisions are drawn first, then applied
5. Allocation: idle CPUs are granted to waiting processes one at a time
6. Cleanup: clear yield marks and advance the tick counter

Before tick 0 each CPU is linked to the highest-priority process still
without a CPU, with no switch penalty.

Author: Student
Date: December 2024
"""

import copy
import logging
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np

from config import (
    AllocationStrategy,
    InstructionKind,
    YieldStrategy,
    SimulationConfig,
    DEFAULT_SIMULATION_CONFIG
)
from process import Process, ProcessGenerator
from processor import CPU, ProcessorManager
from allocation import (
    AllocationPolicy,
    AllocationPolicyFactory,
    AllocationRecord,
    HighestPriorityPolicy
)
from yield_policy import YieldPolicy
from metrics import MetricsComparator, RunReport, StatisticsCollector
from validators import ConfigValidator, ConfigurationError, InvariantViolation


logger = logging.getLogger(__name__)


class SimulationState(Enum):
    """
    States of the simulation engine.

    State Transitions:
    IDLE -> RUNNING (first step)
    RUNNING -> COMPLETED (no process left)
    RUNNING -> STOPPED (stop() or tick cap)
    """
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"


@dataclass
class SimulationResult:
    """
    Complete results of a simulation run.
    """
    allocation_strategy: AllocationStrategy
    yield_strategy: YieldStrategy
    config: SimulationConfig
    report: RunReport
    total_ticks: int
    execution_duration: float  # Real wall-clock time
    yield_count: int = 0
    allocations: List[AllocationRecord] = field(default_factory=list)

    @property
    def cpu_instruction_throughput(self) -> float:
        return self.report.cpu_instruction_throughput

    @property
    def chi_square_completion_distance(self) -> Optional[float]:
        return self.report.chi_square_completion_distance

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for export."""
        return {
            'allocation_strategy': self.allocation_strategy.value,
            'yield_strategy': self.yield_strategy.value,
            'config': self.config.to_dict(),
            'total_ticks': self.total_ticks,
            'execution_duration': round(self.execution_duration, 3),
            'yield_count': self.yield_count,
            'allocation_count': len(self.allocations),
            'report': self.report.to_dict(),
        }


class SchedulingEngine:
    """
    Core engine for the preemptive scheduling simulation.

    The engine owns the authoritative process and CPU registries. Processes
    are created once in initialize(); CPUs persist for the whole run.

    Usage:
        engine = SchedulingEngine(config)
        engine.initialize()
        result = engine.run()
        # or step-by-step:
        engine.initialize()
        while engine.step():
            pass
        result = engine.get_result()
    """

    def __init__(self, config: SimulationConfig = None, rng=None):
        """
        Initialize the scheduling engine.

        Args:
            config: Simulation configuration (validated here)
            rng: Random source; numpy default_rng(config.seed) if None

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        self.config = config or DEFAULT_SIMULATION_CONFIG
        self.config.validate()
        self.rng = rng if rng is not None else np.random.default_rng(self.config.seed)

        # Core components
        self.processor_manager: Optional[ProcessorManager] = None
        self.allocation_policy: Optional[AllocationPolicy] = None
        self.yield_policy: Optional[YieldPolicy] = None
        self.statistics: Optional[StatisticsCollector] = None

        # Process tracking
        self.all_processes: List[Process] = []
        self.processes: Dict[int, Process] = {}  # Alive, keyed by pid

        # Simulation state
        self.state = SimulationState.IDLE
        self.current_tick = 0
        self.yield_count = 0
        self.report: Optional[RunReport] = None
        self._pre_advance_kinds: Dict[int, Optional[InstructionKind]] = {}

        # Observer callbacks
        self._on_process_progress: Optional[Callable[[int, List[InstructionKind]], None]] = None
        self._on_cpu_position: Optional[Callable[[int, Optional[int]], None]] = None
        self._on_step_callback: Optional[Callable[[int], None]] = None
        self._on_complete_callback: Optional[Callable[[RunReport], None]] = None

        self._stop_requested = False
        self._start_wall_time: float = 0
        self._end_wall_time: float = 0

    def set_callbacks(self,
                      on_process_progress: Callable = None,
                      on_cpu_position: Callable = None,
                      on_step: Callable = None,
                      on_complete: Callable = None):
        """
        Set observer callbacks. Return values are ignored.

        Args:
            on_process_progress: (pid, remaining instructions) once per process per tick
            on_cpu_position: (cpu_id, pid or None) whenever a CPU link changes
            on_step: (tick) after each completed tick
            on_complete: (report) when the run finishes
        """
        self._on_process_progress = on_process_progress
        self._on_cpu_position = on_cpu_position
        self._on_step_callback = on_step
        self._on_complete_callback = on_complete

    # =========================================================================
    # Setup
    # =========================================================================

    def initialize(self, workloads: Optional[Sequence[Sequence[InstructionKind]]] = None,
                   priorities: Optional[Sequence[int]] = None) -> bool:
        """
        Create the processes and CPUs and seed the CPU pool.

        Args:
            workloads: Explicit workload per process (generated if None)
            priorities: Explicit priority per process (pid if None)

        Returns:
            True once the engine is ready to step

        Raises:
            ConfigurationError: If the supplied workloads or priorities are invalid
        """
        count = len(workloads) if workloads is not None else self.config.num_processes
        check = ConfigValidator.validate_workloads(workloads, priorities, count)
        if not check:
            raise ConfigurationError("; ".join(check.errors), field=check.field)

        self._reset_state()

        self.processor_manager = ProcessorManager(config=self.config)
        self.allocation_policy = AllocationPolicyFactory.create(
            self.config.allocation_strategy, self.config, rng=self.rng
        )
        self.yield_policy = YieldPolicy(
            self.config.yield_weights, self.config.lookahead_window, rng=self.rng
        )

        generator = ProcessGenerator(config=self.config, rng=self.rng)
        self.all_processes = generator.generate_processes(
            count, workloads=workloads, priorities=priorities
        )
        self.processes = {p.pid: p for p in self.all_processes}
        self.statistics = StatisticsCollector(
            num_cpus=len(self.processor_manager),
            total_processes=len(self.all_processes)
        )

        self._seed_processors()
        self._check_invariants("setup")

        logger.info(
            f"Initialized {len(self.all_processes)} processes on "
            f"{len(self.processor_manager)} CPU(s): "
            f"allocation={self.allocation_policy.name}, "
            f"yield={self.config.yield_strategy.value} {tuple(self.yield_policy.weights)}"
        )
        return True

    def _reset_state(self):
        """Reset all simulation state."""
        self.all_processes = []
        self.processes = {}
        self.current_tick = 0
        self.yield_count = 0
        self.report = None
        self.state = SimulationState.IDLE
        self._stop_requested = False
        self._pre_advance_kinds = {}
        self._start_wall_time = 0
        self._end_wall_time = 0

    def _seed_processors(self):
        """Link each CPU to the highest-priority process still without a CPU."""
        seeding = HighestPriorityPolicy(self.config, rng=self.rng)
        seeding.allocate(
            self.processor_manager,
            self.processes.values(),
            current_tick=0,
            switch_penalty=0,
            on_assign=self._notify_assignment
        )

    # =========================================================================
    # Tick
    # =========================================================================

    def step(self) -> bool:
        """
        Execute one simulation tick.

        Returns:
            True if the simulation should continue, False if done
        """
        if self.state in (SimulationState.COMPLETED, SimulationState.STOPPED):
            return False
        if self.processor_manager is None:
            self.initialize()

        if self.state == SimulationState.IDLE:
            self.state = SimulationState.RUNNING
            self._start_wall_time = time.time()

        if self._stop_requested:
            self._finish(SimulationState.STOPPED, total_ticks=self.current_tick)
            return False

        # Phase 1: workload advance
        self._advance_workloads()
        self._check_invariants("workload advance")

        # Phase 2: statistics & derived state
        self._update_derived_state()

        # Phase 3: termination check
        if not self.processes:
            self._finish(SimulationState.COMPLETED, total_ticks=self.current_tick + 1)
            return False

        # Phase 4: yield
        self._yield_phase()
        self._check_invariants("yield")

        # Phase 5: allocation
        self._allocation_phase()
        self._check_invariants("allocation")

        # Phase 6: cleanup
        self._end_tick()

        if self.config.max_ticks is not None and self.current_tick >= self.config.max_ticks:
            logger.warning(
                f"Tick cap {self.config.max_ticks} reached with "
                f"{len(self.processes)} process(es) still active"
            )
            self._finish(SimulationState.STOPPED, total_ticks=self.current_tick)
            return False

        if self._on_step_callback:
            self._on_step_callback(self.current_tick)

        return True

    def _advance_workloads(self):
        """Phase 1: advance every process by at most one instruction."""
        # Instruction kinds seen by each busy CPU before anyone advances
        self._pre_advance_kinds = {
            cpu.cpu_id: self.processes[cpu.process_id].current_instruction()
            for cpu in self.processor_manager.busy_processors()
        }

        finished: List[Process] = []
        for process in list(self.processes.values()):
            cpu = self.processor_manager.get(process.cpu_id)
            if process.advance_one_tick(cpu):
                self.statistics.record_cpu_instruction()
            self._notify_progress(process)
            if process.is_complete():
                finished.append(process)

        for process in finished:
            self._terminate(process)

    def _terminate(self, process: Process):
        """Release the CPU, record final statistics and drop the process."""
        cpu = self.processor_manager.release(process)
        process.finalize(self.current_tick, self.statistics)
        del self.processes[process.pid]
        logger.debug(f"[T={self.current_tick}] P{process.pid} terminated")
        if cpu is not None:
            self._notify_cpu(cpu)

    def _update_derived_state(self):
        """Phase 2: throughput, time-on-cpu, idle accounting, switch countdown."""
        self.statistics.update_throughput(self.current_tick)

        for process in self.processes.values():
            if process.has_cpu():
                process.time_on_cpu += 1

        # Unlinked CPUs are not counted as idle
        for cpu in self.processor_manager.busy_processors():
            kind = self._pre_advance_kinds.get(cpu.cpu_id)
            if not cpu.is_ready() or kind is InstructionKind.IO:
                cpu.record_idle_tick()

        for cpu in self.processor_manager:
            cpu.tick_switch_state()

    def _yield_phase(self):
        """Phase 4: draw every yield decision, then apply them."""
        if len(self.processes) <= 1:
            return

        active = list(self.processes.values())
        holders = [
            p for p in active
            if p.has_cpu() and self.processor_manager.get(p.cpu_id).is_ready()
        ]
        yielding = [p for p in holders if self.yield_policy.should_yield(p, active)]

        for process in yielding:
            cpu = self.processor_manager.release(process)
            process.mark_yielded()
            self.yield_count += 1
            logger.debug(f"[T={self.current_tick}] P{process.pid} yielded CPU {cpu.cpu_id}")
            self._notify_cpu(cpu)

    def _allocation_phase(self):
        """Phase 5: grant idle CPUs sequentially."""
        self.allocation_policy.allocate(
            self.processor_manager,
            self.processes.values(),
            current_tick=self.current_tick,
            on_assign=self._notify_assignment
        )

    def _end_tick(self):
        """Phase 6: clear per-tick marks and advance time."""
        for process in self.processes.values():
            process.end_tick()
        self.current_tick += 1

    def _finish(self, state: SimulationState, total_ticks: int):
        self.state = state
        self._end_wall_time = time.time()
        self.report = self.statistics.finalize(
            self.processor_manager,
            total_ticks=total_ticks,
            completed=(state == SimulationState.COMPLETED)
        )
        logger.info(
            f"Simulation {state.value} after {total_ticks} ticks: "
            f"throughput={self.report.cpu_instruction_throughput:.3f}, "
            f"chi-square={self.report.chi_square_completion_distance}"
        )
        if self._on_complete_callback:
            self._on_complete_callback(self.report)

    # =========================================================================
    # Invariants and notifications
    # =========================================================================

    def _check_invariants(self, phase: str):
        if not self.config.check_invariants:
            return
        try:
            self.processor_manager.check_links(self.processes.values())
            for process in self.processes.values():
                if not 0 <= process.progress_pointer <= process.workload_length:
                    raise InvariantViolation(
                        f"P{process.pid} progress pointer out of range",
                        field="progress_pointer",
                        value=process.progress_pointer
                    )
        except InvariantViolation:
            logger.error(f"Invariant violated after {phase} phase at T={self.current_tick}")
            raise

    def _notify_progress(self, process: Process):
        if self._on_process_progress:
            self._on_process_progress(process.pid, process.remaining_workload())

    def _notify_cpu(self, cpu: CPU):
        if self._on_cpu_position:
            self._on_cpu_position(cpu.cpu_id, cpu.process_id)

    def _notify_assignment(self, cpu: CPU, process: Process):
        self._notify_cpu(cpu)

    # =========================================================================
    # Control
    # =========================================================================

    def run(self) -> SimulationResult:
        """
        Run the simulation until no process is left or the tick cap is hit.

        Returns:
            SimulationResult containing all data
        """
        if self.processor_manager is None:
            self.initialize()
        while self.step():
            pass
        return self.get_result()

    def stop(self):
        """Stop the simulation before the next tick."""
        self._stop_requested = True

    def is_complete(self) -> bool:
        return self.state in (SimulationState.COMPLETED, SimulationState.STOPPED)

    def is_running(self) -> bool:
        return self.state == SimulationState.RUNNING

    def get_result(self) -> SimulationResult:
        """
        Get simulation results.

        Returns:
            SimulationResult with all data (a partial report if still running)
        """
        if self.processor_manager is None:
            self.initialize()
        report = self.report
        if report is None:
            report = self.statistics.finalize(
                self.processor_manager, total_ticks=self.current_tick, completed=False
            )
        end = self._end_wall_time or time.time()
        start = self._start_wall_time or end

        return SimulationResult(
            allocation_strategy=self.config.allocation_strategy,
            yield_strategy=self.config.yield_strategy,
            config=self.config,
            report=report,
            total_ticks=report.total_ticks,
            execution_duration=end - start,
            yield_count=self.yield_count,
            allocations=list(self.allocation_policy.allocation_history)
        )

    def get_current_state(self) -> Dict[str, Any]:
        """
        Get current simulation state for display.

        Returns:
            Dictionary with current state information
        """
        processors = list(self.processor_manager) if self.processor_manager else []
        return {
            'tick': self.current_tick,
            'state': self.state.value,
            'total_processes': len(self.all_processes),
            'active': len(self.processes),
            'completed': len(self.all_processes) - len(self.processes),
            'throughput': self.statistics.cpu_instruction_throughput if self.statistics else 0.0,
            'yields': self.yield_count,
            'processors': [cpu.to_dict() for cpu in processors],
            'processes': [p.to_dict() for p in self.processes.values()],
        }


class BatchSimulator:
    """
    Run the same workload under several policies for comparison.

    Every run uses the base configuration's seed, so all runs see identical
    workloads.
    """

    def __init__(self, config: SimulationConfig = None):
        self.config = config or DEFAULT_SIMULATION_CONFIG
        if self.config.seed is None:
            self.config = replace(self.config, seed=int(np.random.default_rng().integers(2**31)))
        self.results: Dict[str, SimulationResult] = {}
        self.comparator = MetricsComparator()

    @staticmethod
    def policy_name(allocation: AllocationStrategy, yield_strategy: YieldStrategy) -> str:
        return f"{allocation.value} / {yield_strategy.value}"

    def run_comparison(self,
                       allocation_strategies: Sequence[AllocationStrategy] = None,
                       yield_strategies: Sequence[YieldStrategy] = None) -> Dict[str, SimulationResult]:
        """
        Run one simulation per (allocation, yield) pair.

        Returns:
            Dictionary mapping policy names to results
        """
        if allocation_strategies is None:
            allocation_strategies = list(AllocationStrategy)
        if yield_strategies is None:
            # Custom weights replace every preset, so one run per allocation is enough
            if self.config.yield_weights_override is not None:
                yield_strategies = [self.config.yield_strategy]
            else:
                yield_strategies = list(YieldStrategy)

        self.results.clear()
        self.comparator.clear()

        for allocation in allocation_strategies:
            for yield_strategy in yield_strategies:
                run_config = replace(
                    copy.deepcopy(self.config),
                    allocation_strategy=allocation,
                    yield_strategy=yield_strategy
                )
                engine = SchedulingEngine(run_config)
                engine.initialize()
                result = engine.run()

                name = self.policy_name(allocation, yield_strategy)
                self.results[name] = result
                self.comparator.add_result(name, result.report)
                logger.info(
                    f"{name}: throughput={result.cpu_instruction_throughput:.3f} "
                    f"ticks={result.total_ticks}"
                )

        return dict(self.results)

    def get_comparison_report(self) -> str:
        return self.comparator.generate_report()

    def get_best_policy(self, metric: str = 'cpu_instruction_throughput') -> Optional[str]:
        return self.comparator.get_best(metric)
