"""
Metrics Module for the Preemptive CPU Scheduling Simulator

Accumulates run statistics and derives the end-of-run report.

Metrics:
- CPU instruction throughput: CPU instructions retired per elapsed tick,
  summed over all CPUs (ideal = number of CPUs)
- Chi-square completion distance: how far actual completion ticks are from
  a priority-proportional ideal

    ideal_i  = priority_i * (max_ticks / max_priority)
    distance = sqrt( sum_i (actual_i - ideal_i)^2 / (actual_i + ideal_i) )

Per-process records are keyed by pid and kept after the process itself is
gone, so the aggregate metrics cover every process that ever ran.

Author: Student
Date: December 2024
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

import numpy as np

from validators import DegenerateMetricError, InvariantViolation


logger = logging.getLogger(__name__)


def compute_chi_square_distance(ticks_by_process: Dict[int, int],
                                priorities_by_process: Dict[int, int]) -> float:
    """
    Chi-square-style distance between actual and priority-proportional
    completion ticks.

    A process whose actual and ideal ticks are both 0 contributes 0.

    Raises:
        DegenerateMetricError: No completed processes, a negative priority,
            or a maximum priority of 0
    """
    if not ticks_by_process:
        raise DegenerateMetricError("no completed processes", field="ticks_by_process")

    pids = sorted(ticks_by_process)
    missing = [pid for pid in pids if pid not in priorities_by_process]
    if missing:
        raise DegenerateMetricError(
            f"no priority recorded for processes {missing}", field="priorities_by_process"
        )

    actual = np.array([ticks_by_process[pid] for pid in pids], dtype=float)
    priorities = np.array([priorities_by_process[pid] for pid in pids], dtype=float)

    if np.any(priorities < 0):
        raise DegenerateMetricError(
            "priorities must be non-negative", field="priorities_by_process"
        )
    max_priority = priorities.max()
    if max_priority == 0:
        raise DegenerateMetricError(
            "maximum priority is 0, ideal completion ticks are undefined",
            field="max_priority",
            value=0
        )

    ideal = priorities * (actual.max() / max_priority)
    numerator = (actual - ideal) ** 2
    denominator = actual + ideal
    terms = np.divide(
        numerator, denominator,
        out=np.zeros_like(numerator),
        where=denominator != 0
    )
    return float(np.sqrt(terms.sum()))


@dataclass
class RunStatistics:
    """
    Raw statistics of a run.

    The three per-process mappings are filled once per process at
    termination and never pruned.
    """
    ticks_by_process: Dict[int, int] = field(default_factory=dict)
    priorities_by_process: Dict[int, int] = field(default_factory=dict)
    cpu_instructions_by_process: Dict[int, int] = field(default_factory=dict)
    total_cpu_instructions_completed: int = 0
    current_tick: int = 0


@dataclass
class RunReport:
    """End-of-run report handed to the caller."""
    cpu_instruction_throughput: float
    ideal_throughput: float
    chi_square_completion_distance: Optional[float]
    degenerate_reason: Optional[str]
    total_ticks: int
    total_cpu_instructions: int
    completed_processes: int
    total_processes: int
    idle_ticks_by_cpu: Dict[int, int]
    cpu_utilization: float
    throughput_history: List[float]
    ticks_by_process: Dict[int, int]
    priorities_by_process: Dict[int, int]
    cpu_instructions_by_process: Dict[int, int]
    completed: bool = True

    @property
    def throughput_efficiency(self) -> float:
        """Throughput as a fraction of the ideal."""
        if self.ideal_throughput == 0:
            return 0.0
        return self.cpu_instruction_throughput / self.ideal_throughput

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for export."""
        return {
            'cpu_instruction_throughput': round(self.cpu_instruction_throughput, 6),
            'ideal_throughput': self.ideal_throughput,
            'throughput_efficiency': round(self.throughput_efficiency, 6),
            'chi_square_completion_distance': (
                round(self.chi_square_completion_distance, 6)
                if self.chi_square_completion_distance is not None else None
            ),
            'degenerate_reason': self.degenerate_reason,
            'total_ticks': self.total_ticks,
            'total_cpu_instructions': self.total_cpu_instructions,
            'completed_processes': self.completed_processes,
            'total_processes': self.total_processes,
            'idle_ticks_by_cpu': {str(k): v for k, v in self.idle_ticks_by_cpu.items()},
            'cpu_utilization': round(self.cpu_utilization, 6),
            'ticks_by_process': {str(k): v for k, v in self.ticks_by_process.items()},
            'priorities_by_process': {str(k): v for k, v in self.priorities_by_process.items()},
            'cpu_instructions_by_process': {
                str(k): v for k, v in self.cpu_instructions_by_process.items()
            },
            'completed': self.completed,
        }


class StatisticsCollector:
    """
    Accumulates throughput and per-process completion data for one run.
    """

    def __init__(self, num_cpus: int, total_processes: int = 0):
        self.statistics = RunStatistics()
        self.ideal_throughput = float(num_cpus)
        self.total_processes = total_processes
        self.cpu_instruction_throughput = 0.0
        self.throughput_history: List[float] = []

    def record_cpu_instruction(self, count: int = 1) -> None:
        self.statistics.total_cpu_instructions_completed += count

    def record_completion(self, pid: int, ticks: int, priority: int,
                          cpu_instructions: int) -> None:
        """Store the final record of a terminated process (exactly once per pid)."""
        if pid in self.statistics.ticks_by_process:
            raise InvariantViolation(f"P{pid} completion recorded twice", field="pid", value=pid)
        self.statistics.ticks_by_process[pid] = ticks
        self.statistics.priorities_by_process[pid] = priority
        self.statistics.cpu_instructions_by_process[pid] = cpu_instructions
        logger.debug(f"[T={ticks}] P{pid} completed ({cpu_instructions} CPU instructions)")

    def update_throughput(self, current_tick: int) -> float:
        """Recompute throughput as instructions per elapsed tick (tick is 0-based)."""
        self.statistics.current_tick = current_tick
        self.cpu_instruction_throughput = (
            self.statistics.total_cpu_instructions_completed / (current_tick + 1)
        )
        self.throughput_history.append(self.cpu_instruction_throughput)
        return self.cpu_instruction_throughput

    def chi_square_completion_distance(self) -> float:
        return compute_chi_square_distance(
            self.statistics.ticks_by_process,
            self.statistics.priorities_by_process
        )

    def finalize(self, processors: Iterable, total_ticks: int,
                 completed: bool = True) -> RunReport:
        """
        Build the run report.

        A degenerate fairness metric is reported as
        ``chi_square_completion_distance=None`` with a reason, not raised.
        """
        distance: Optional[float] = None
        reason: Optional[str] = None
        try:
            distance = self.chi_square_completion_distance()
        except DegenerateMetricError as e:
            reason = e.message
            logger.warning(f"Chi-square completion distance is degenerate: {reason}")

        idle_ticks = {cpu.cpu_id: cpu.idle_ticks for cpu in processors}
        if idle_ticks and total_ticks > 0:
            utilization = 1.0 - (sum(idle_ticks.values()) / (len(idle_ticks) * total_ticks))
        else:
            utilization = 0.0

        stats = self.statistics
        return RunReport(
            cpu_instruction_throughput=self.cpu_instruction_throughput,
            ideal_throughput=self.ideal_throughput,
            chi_square_completion_distance=distance,
            degenerate_reason=reason,
            total_ticks=total_ticks,
            total_cpu_instructions=stats.total_cpu_instructions_completed,
            completed_processes=len(stats.ticks_by_process),
            total_processes=self.total_processes,
            idle_ticks_by_cpu=idle_ticks,
            cpu_utilization=utilization,
            throughput_history=list(self.throughput_history),
            ticks_by_process=dict(stats.ticks_by_process),
            priorities_by_process=dict(stats.priorities_by_process),
            cpu_instructions_by_process=dict(stats.cpu_instructions_by_process),
            completed=completed
        )


class MetricsComparator:
    """
    Compare run reports produced under different policies.
    """

    # metric name -> True if higher is better
    METRICS = {
        'cpu_instruction_throughput': True,
        'chi_square_completion_distance': False,
        'cpu_utilization': True,
        'total_ticks': False,
    }

    def __init__(self):
        self.results: Dict[str, RunReport] = {}

    def add_result(self, name: str, report: RunReport) -> None:
        self.results[name] = report

    def clear(self) -> None:
        self.results.clear()

    def get_best(self, metric: str = 'cpu_instruction_throughput') -> Optional[str]:
        """
        Name of the best run for ``metric``; runs where the metric is
        undefined are skipped.
        """
        if metric not in self.METRICS:
            raise ValueError(f"Unknown metric: {metric}")
        higher_is_better = self.METRICS[metric]
        scored = [
            (name, getattr(report, metric))
            for name, report in self.results.items()
            if getattr(report, metric) is not None
        ]
        if not scored:
            return None
        if higher_is_better:
            return max(scored, key=lambda item: item[1])[0]
        return min(scored, key=lambda item: item[1])[0]

    def generate_report(self) -> str:
        """Render a plain-text comparison table."""
        if not self.results:
            return "No results to compare."

        width = max(len(name) for name in self.results) + 2
        header = (
            f"{'Policy':<{width}} {'Throughput':>10} {'ChiSq':>10} "
            f"{'Util':>8} {'Ticks':>8}"
        )
        lines = [header, "-" * len(header)]
        for name, report in self.results.items():
            chi = report.chi_square_completion_distance
            chi_text = f"{chi:>10.3f}" if chi is not None else f"{'n/a':>10}"
            lines.append(
                f"{name:<{width}} {report.cpu_instruction_throughput:>10.3f} {chi_text} "
                f"{report.cpu_utilization * 100:>7.1f}% {report.total_ticks:>8d}"
            )
        lines.append("")
        lines.append(f"Best throughput: {self.get_best('cpu_instruction_throughput')}")
        lines.append(f"Best fairness:   {self.get_best('chi_square_completion_distance')}")
        return "\n".join(lines)
