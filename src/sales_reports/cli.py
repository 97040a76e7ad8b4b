"""Command-line entry point for the sales report pipeline.

All orchestration in this module is limited to argparse wiring and mapping
failures onto exit codes. Run without arguments, the command processes the
current working directory with the default file names.
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Sequence

from . import core_logic, data_manager, log


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="sales-reports",
        description="Rank salespeople and products from the sales files in the working directory.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to sales_reports.ini (defaults to ./sales_reports.ini when present).",
    )
    parser.add_argument(
        "--workbook",
        type=Path,
        default=None,
        help="Also write both rankings to this .xlsx workbook.",
    )
    return parser


def load_settings(config_path: Path | None = None, workbook: Path | None = None) -> data_manager.ConfigSettings:
    """Resolve run settings from the optional config file and CLI overrides."""
    settings = core_logic.resolve_settings(config_path)
    return core_logic.with_workbook(settings, workbook)


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, data_manager.MalformedRecordError):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    log.error("%s", error)
    return 1


def report_outcome(result: core_logic.PipelineResult) -> None:
    """Log the completion message, listing the sales files that failed."""
    summary = result.summary
    for path in summary.failed:
        log.warning("Sales file not fully processed: %s", path.name)
    log.info(
        "Reports generated: %s (%d sales lines applied from %d files)",
        ", ".join(path.name for path in result.reports),
        summary.applied_lines,
        len(summary.applied),
    )


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        settings = load_settings(args.config, args.workbook)
        result = core_logic.run_pipeline(settings)
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
    report_outcome(result)
    return 0
