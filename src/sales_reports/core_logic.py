"""Business logic layer for the sales report pipeline.

This module folds the per-salesperson sales files into the product and
salesperson tables and ranks both tables for the reports. It consumes the
data access layer for all I/O.

The run is a strict linear sequence: load products, load salespeople,
reconcile every discovered sales file, emit the reports. A failure in either
load aborts the run before any report is touched; problems with an individual
sales file are contained and logged.
"""

from __future__ import annotations

import configparser
from dataclasses import dataclass, field, replace
from decimal import Decimal, localcontext
from enum import Enum
from functools import partial
from operator import attrgetter
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from . import data_manager, log


class ReconciliationError(Exception):
    """Raised when a sales record cannot be matched against the tables."""


class MissingReferenceError(ReconciliationError):
    """Raised when a referenced product or salesperson is unknown."""


class ReconcileStatus(str, Enum):
    """Outcome of folding one sales file into the tables."""

    APPLIED = "APPLIED"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class RuntimeContext:
    """Settings plus the two tables the reconciler accumulates into.

    The context owns every :class:`~sales_reports.data_manager.Product` and
    :class:`~sales_reports.data_manager.Salesperson`; reconciliation mutates
    their accumulation fields in place and never adds or removes entries.
    """

    settings: data_manager.ConfigSettings
    products: Dict[str, data_manager.Product] = field(default_factory=dict)
    salespeople: Dict[str, data_manager.Salesperson] = field(default_factory=dict)


@dataclass(frozen=True)
class ReconcileResult:
    """What happened to a single sales file."""

    path: Path
    status: ReconcileStatus
    applied_lines: int = 0
    ignored_lines: int = 0
    error: Optional[str] = None


@dataclass
class ReconcileSummary:
    """Per-file results of a reconciliation pass, in processing order."""

    results: List[ReconcileResult] = field(default_factory=list)

    def _paths(self, status: ReconcileStatus) -> List[Path]:
        return [result.path for result in self.results if result.status is status]

    @property
    def applied(self) -> List[Path]:
        return self._paths(ReconcileStatus.APPLIED)

    @property
    def skipped(self) -> List[Path]:
        return self._paths(ReconcileStatus.SKIPPED)

    @property
    def failed(self) -> List[Path]:
        return self._paths(ReconcileStatus.FAILED)

    @property
    def applied_lines(self) -> int:
        return sum(result.applied_lines for result in self.results)

    @property
    def ignored_lines(self) -> int:
        return sum(result.ignored_lines for result in self.results)


@dataclass(frozen=True)
class PipelineResult:
    """Reconciliation summary and the report files written by a run."""

    summary: ReconcileSummary
    reports: Tuple[Path, ...]


def resolve_settings(config_path: Optional[Path] = None, *, search_dir: Optional[Path] = None) -> data_manager.ConfigSettings:
    """Resolve the settings for a run.

    When a configuration file is found (or given) its entries override the
    defaults and relative paths are anchored at the file's folder. Without one
    the defaults apply to ``search_dir``, the working directory by default.

    Raises:
        FileNotFoundError: If an explicit ``config_path`` does not exist.
        ValueError: If the configuration holds an invalid entry.
    """

    base_dir = Path(search_dir) if search_dir is not None else Path.cwd()
    located = data_manager.find_config_file(config_path, search_dir=base_dir)
    if located is None:
        log.debug("No configuration file in '%s'; using defaults", base_dir)
        return data_manager.parse_settings(configparser.ConfigParser(), base_path=base_dir)

    resolved = Path(located).expanduser().resolve()
    parser = data_manager.read_config(resolved)
    log.info("Using configuration '%s'", resolved)
    return data_manager.parse_settings(parser, base_path=resolved.parent)


def with_workbook(settings: data_manager.ConfigSettings, workbook: Optional[Path]) -> data_manager.ConfigSettings:
    """Return ``settings`` with the workbook export redirected to ``workbook``."""

    if workbook is None:
        return settings
    return replace(settings, workbook=Path(workbook).expanduser().resolve())


def load_products(settings: data_manager.ConfigSettings) -> Dict[str, data_manager.Product]:
    """Load the products source into a table keyed by product id.

    Raises:
        FileNotFoundError: If the products file is missing.
        data_manager.MalformedRecordError: If any line is malformed.
    """

    return data_manager.load_keyed(
        settings.products_file,
        partial(data_manager.deserialize_product, delimiter=settings.delimiter),
        attrgetter("key"),
        encoding=settings.encoding,
    )


def load_salespeople(settings: data_manager.ConfigSettings) -> Dict[str, data_manager.Salesperson]:
    """Load the salespeople source into a table keyed by document number.

    Raises:
        FileNotFoundError: If the salespeople file is missing.
        data_manager.MalformedRecordError: If any line is malformed.
    """

    return data_manager.load_keyed(
        settings.salespeople_file,
        partial(data_manager.deserialize_salesperson, delimiter=settings.delimiter),
        attrgetter("key"),
        encoding=settings.encoding,
    )


def load_runtime_context(settings: data_manager.ConfigSettings) -> RuntimeContext:
    """Load both tables and bundle them with ``settings``.

    Products are loaded first; a failure there means the salespeople file is
    never opened.
    """

    products = load_products(settings)
    salespeople = load_salespeople(settings)
    log.info(
        "Loaded runtime context with %d products and %d salespeople",
        len(products),
        len(salespeople),
    )
    return RuntimeContext(settings=settings, products=products, salespeople=salespeople)


def get_product(context: RuntimeContext, product_id: str) -> data_manager.Product:
    """Resolve a product by id.

    Raises:
        MissingReferenceError: If ``product_id`` is not in the products table.
    """

    try:
        return context.products[product_id]
    except KeyError as exc:
        raise MissingReferenceError(f"Unknown product id: {product_id}") from exc


def get_salesperson(context: RuntimeContext, document_number: str) -> data_manager.Salesperson:
    """Resolve a salesperson by document number.

    Raises:
        MissingReferenceError: If ``document_number`` is not in the
            salespeople table.
    """

    try:
        return context.salespeople[document_number]
    except KeyError as exc:
        raise MissingReferenceError(f"Unknown salesperson document number: {document_number}") from exc


def apply_sales_record(
    salesperson: data_manager.Salesperson,
    product: data_manager.Product,
    record: data_manager.SalesRecord,
) -> Decimal:
    """Fold one line item into both accumulators and return its value.

    These two updates are the only shared-state mutations of a run; they
    must be serialised if files are ever reconciled in parallel.
    """

    with localcontext(data_manager.MONEY_CONTEXT):
        amount = product.price * record.quantity
        salesperson.total_sales += amount
    product.quantity_sold += record.quantity
    return amount


def reconcile_sales_file(context: RuntimeContext, path: Path) -> ReconcileResult:
    """Fold a single sales file into the context tables.

    The header names the owning salesperson. An unknown owner skips the whole
    file without touching either table. Line items naming an unknown product
    are ignored one by one. A malformed or unreadable file is abandoned where
    the problem occurs: lines applied before that point stay applied and a
    warning naming the file is logged.

    Args:
        context (RuntimeContext): Tables to accumulate into.
        path (Path): Sales file to process.

    Returns:
        ReconcileResult: Status of the file and the number of applied and
            ignored line items.
    """

    path = Path(path)
    settings = context.settings
    applied = 0
    ignored = 0
    try:
        with data_manager.open_sales_file(path, delimiter=settings.delimiter, encoding=settings.encoding) as (
            header,
            records,
        ):
            try:
                salesperson = get_salesperson(context, header.document_number)
            except MissingReferenceError:
                log.info(
                    "Skipping sales file '%s': no salesperson with document number '%s'",
                    path.name,
                    header.document_number,
                )
                return ReconcileResult(path=path, status=ReconcileStatus.SKIPPED)

            for record in records:
                try:
                    product = get_product(context, record.product_id)
                except MissingReferenceError:
                    ignored += 1
                    log.debug("Ignoring unknown product '%s' in '%s'", record.product_id, path.name)
                    continue
                apply_sales_record(salesperson, product, record)
                applied += 1
    except (data_manager.MalformedRecordError, UnicodeDecodeError, OSError) as exc:
        log.warning("Could not process sales file '%s': %s", path.name, exc)
        return ReconcileResult(
            path=path,
            status=ReconcileStatus.FAILED,
            applied_lines=applied,
            ignored_lines=ignored,
            error=str(exc),
        )

    log.debug("Reconciled '%s' (%d lines applied, %d ignored)", path.name, applied, ignored)
    return ReconcileResult(
        path=path,
        status=ReconcileStatus.APPLIED,
        applied_lines=applied,
        ignored_lines=ignored,
    )


def reconcile_sales_files(context: RuntimeContext, paths: Optional[Iterable[Path]] = None) -> ReconcileSummary:
    """Reconcile every sales file, independently of each other.

    When ``paths`` is omitted the files are discovered under the configured
    directory using the configured prefix. Accumulation is commutative, so the
    processing order does not change the final totals.
    """

    if paths is None:
        paths = data_manager.discover_sales_files(context.settings.directory, context.settings.sales_prefix)

    summary = ReconcileSummary()
    for path in paths:
        summary.results.append(reconcile_sales_file(context, path))

    log.info(
        "Reconciled %d sales files (%d applied, %d skipped, %d failed)",
        len(summary.results),
        len(summary.applied),
        len(summary.skipped),
        len(summary.failed),
    )
    return summary


def rank_salespeople(context: RuntimeContext) -> List[data_manager.Salesperson]:
    """Order salespeople by total sales, highest first.

    Ties are broken by document number ascending so reports are reproducible.
    """

    return sorted(
        context.salespeople.values(),
        key=lambda salesperson: (-salesperson.total_sales, salesperson.document_number),
    )


def rank_products(context: RuntimeContext) -> List[data_manager.Product]:
    """Order products by quantity sold, highest first.

    Ties are broken by product id ascending so reports are reproducible.
    """

    return sorted(
        context.products.values(),
        key=lambda product: (-product.quantity_sold, product.product_id),
    )


def emit_reports(context: RuntimeContext) -> Tuple[Path, ...]:
    """Write the salesperson and product reports, plus the optional workbook.

    Existing report files are replaced.

    Returns:
        tuple[Path, ...]: Paths of every file written.
    """

    settings = context.settings
    salespeople = rank_salespeople(context)
    products = rank_products(context)

    written = [
        data_manager.write_lines(
            settings.salesperson_report,
            (
                data_manager.serialize_salesperson_report_line(salesperson, delimiter=settings.delimiter)
                for salesperson in salespeople
            ),
            encoding=settings.encoding,
        ),
        data_manager.write_lines(
            settings.product_report,
            (data_manager.serialize_product_report_line(product, delimiter=settings.delimiter) for product in products),
            encoding=settings.encoding,
        ),
    ]

    if settings.workbook is not None:
        workbook = data_manager.build_report_workbook(salespeople, products)
        written.append(data_manager.save_workbook(workbook, settings.workbook))

    for path in written:
        log.info("Wrote report '%s'", path)
    return tuple(written)


def run_pipeline(settings: data_manager.ConfigSettings) -> PipelineResult:
    """Run the whole pipeline: load, reconcile, emit.

    Raises:
        FileNotFoundError: If a source file is missing. No report is written.
        data_manager.MalformedRecordError: If a source file holds a malformed
            line. No report is written.
    """

    log.info("Starting sales report run in '%s'", settings.directory)
    context = load_runtime_context(settings)
    summary = reconcile_sales_files(context)
    reports = emit_reports(context)
    return PipelineResult(summary=summary, reports=reports)
