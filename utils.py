"""
Utilities Module for the Preemptive CPU Scheduling Simulator

Helpers around the core engine:
- setup_logging(): configure the root logger from a LoggingConfig
- LoggingRenderer: a text stand-in for the workload-strip / CPU-icon display
- DataExporter: JSON export of simulation results
- format_report(): human-readable run summary

Author: Student
Date: December 2024
"""

import json
import logging
from typing import List, Optional

from config import InstructionKind, LoggingConfig, DEFAULT_LOGGING_CONFIG


def setup_logging(config: LoggingConfig = None) -> logging.Logger:
    """
    Configure logging for the application.

    Args:
        config: LoggingConfig (defaults if None)

    Returns:
        The application logger
    """
    config = config or DEFAULT_LOGGING_CONFIG
    level = logging.DEBUG if config.verbose else getattr(logging, config.level.upper(), logging.INFO)

    handlers: List[logging.Handler] = []
    if config.log_to_console:
        handlers.append(logging.StreamHandler())
    if config.log_to_file:
        handlers.append(logging.FileHandler(config.log_file_path))

    formatter = logging.Formatter(config.log_format, datefmt=config.date_format)
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(level)

    return logging.getLogger("scheduler")


class LoggingRenderer:
    """
    Renders engine callbacks as log lines.

    Workload strips are drawn as a string of 'C' (CPU) and 'I' (IO)
    characters from the progress pointer to the end.
    """

    def __init__(self, logger: logging.Logger = None, strip_width: int = 40):
        self.logger = logger or logging.getLogger("scheduler.render")
        self.strip_width = strip_width

    @staticmethod
    def render_strip(instructions: List[InstructionKind], width: Optional[int] = None) -> str:
        shown = instructions if width is None else instructions[:width]
        strip = "".join("C" if kind is InstructionKind.CPU else "I" for kind in shown)
        if width is not None and len(instructions) > width:
            strip += "..."
        return strip

    def on_process_progress(self, process_id: int, remaining: List[InstructionKind]) -> None:
        self.logger.debug(
            f"P{process_id:<3} [{len(remaining):>4} left] "
            f"{self.render_strip(remaining, self.strip_width)}"
        )

    def on_cpu_position(self, cpu_id: int, process_id: Optional[int]) -> None:
        target = f"P{process_id}" if process_id is not None else "free"
        self.logger.debug(f"CPU {cpu_id} -> {target}")


class DataExporter:
    """Export simulation results as JSON."""

    @staticmethod
    def to_json(result, indent: int = 2) -> str:
        """
        Serialize a SimulationResult, or a dict of them keyed by name.
        """
        if isinstance(result, dict):
            payload = {name: item.to_dict() for name, item in result.items()}
        else:
            payload = result.to_dict()
        return json.dumps(payload, indent=indent)

    @classmethod
    def export_json(cls, result, path: str) -> str:
        """
        Write results to ``path``.

        Returns:
            The path written
        """
        with open(path, "w", encoding="utf-8") as handle:
            handle.write(cls.to_json(result))
        return path


def format_report(result) -> str:
    """Plain-text summary of a SimulationResult."""
    report = result.report
    chi = report.chi_square_completion_distance
    chi_text = f"{chi:.4f}" if chi is not None else f"n/a ({report.degenerate_reason})"
    lines = [
        f"Allocation strategy:          {result.allocation_strategy.value}",
        f"Yield strategy:               {result.yield_strategy.value}",
        f"Total ticks:                  {report.total_ticks}"
        + ("" if report.completed else " (stopped before completion)"),
        f"Completed processes:          {report.completed_processes}/{report.total_processes}",
        f"CPU instructions retired:     {report.total_cpu_instructions}",
        f"CPU instruction throughput:   {report.cpu_instruction_throughput:.4f} "
        f"(ideal {report.ideal_throughput:.0f})",
        f"CPU utilization:              {report.cpu_utilization * 100:.1f}%",
        f"Yields:                       {result.yield_count}",
        f"Chi-square completion dist.:  {chi_text}",
    ]
    return "\n".join(lines)
