"""Data access layer for the sales report pipeline.

This module provides low-level helpers that read the delimited source files
and write the ranked reports. Reconciliation rules belong elsewhere.

The public API is designed around four responsibilities:

1. Configuration handling: finding and parsing ``sales_reports.ini``.
2. Record codecs: turning one delimited line into a typed record and back.
3. Source loading: indexing a whole file by key and streaming sales files.
4. Report output: writing the delimited reports and the optional workbook.
"""


from __future__ import annotations

import configparser
import re
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import (
    MAX_EMAX,
    MAX_PREC,
    MIN_EMIN,
    ROUND_HALF_UP,
    Context,
    Decimal,
    InvalidOperation,
    localcontext,
)
from pathlib import Path
from typing import Callable, ClassVar, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, TypeVar

import openpyxl
from openpyxl.styles import Font
from openpyxl.workbook import Workbook

from . import log
from .constants import (
    CONFIG_FILE_NAME,
    DEFAULT_ENCODING,
    FIELD_DELIMITER,
    REPORT_SHEET_COLUMNS,
    SALES_FILE_PREFIX,
    DataFile,
    ReportSheet,
)


T = TypeVar("T")
K = TypeVar("K")

_QUANTITY_PATTERN = re.compile(r"\+?[0-9]+")
_CENTS = Decimal("0.01")

# Sums, products and rounding to cents are exact under this context.
MONEY_CONTEXT = Context(prec=MAX_PREC, Emax=MAX_EMAX, Emin=MIN_EMIN, rounding=ROUND_HALF_UP)


class SalesDataError(Exception):
    """Base class for problems found in the sales source files."""


class MalformedRecordError(SalesDataError, ValueError):
    """Raised when a line cannot be split or parsed into its record type."""

    def __init__(self, message: str, *, source: Optional[Path] = None, line_number: Optional[int] = None) -> None:
        self.source = source
        self.line_number = line_number
        if source is not None and line_number is not None:
            message = f"{source.name}, line {line_number}: {message}"
        elif source is not None:
            message = f"{source.name}: {message}"
        super().__init__(message)


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``sales_reports.ini`` settings."""

    directory: Path
    products_file: Path
    salespeople_file: Path
    sales_prefix: str
    salesperson_report: Path
    product_report: Path
    delimiter: str = FIELD_DELIMITER
    encoding: str = DEFAULT_ENCODING
    workbook: Optional[Path] = None


class _KeyedRecord:
    """Mixin freezing the key attribute of an otherwise mutable record."""

    key_field: ClassVar[str]

    def __setattr__(self, name: str, value: object) -> None:
        if name == self.key_field and name in self.__dict__:
            raise AttributeError(f"{type(self).__name__}.{name} cannot change once set")
        super().__setattr__(name, value)

    @property
    def key(self) -> str:
        return getattr(self, self.key_field)


@dataclass
class Product(_KeyedRecord):
    """Row of the products source plus the quantity accumulated so far."""

    key_field: ClassVar[str] = "product_id"

    product_id: str
    name: str
    price: Decimal
    quantity_sold: int = 0


@dataclass
class Salesperson(_KeyedRecord):
    """Row of the salespeople source plus the sales value accumulated so far."""

    key_field: ClassVar[str] = "document_number"

    document_type: str
    document_number: str
    first_names: str
    surname: str
    total_sales: Decimal = Decimal("0.00")

    @property
    def full_name(self) -> str:
        return f"{self.first_names} {self.surname}"


@dataclass(frozen=True)
class SalesFileHeader:
    """First line of a sales file, identifying its owner."""

    document_type: str
    document_number: str


@dataclass(frozen=True)
class SalesRecord:
    """One ``(product, quantity)`` line item of a sales file."""

    product_id: str
    quantity: int


def find_config_file(explicit_path: Optional[Path] = None, *, search_dir: Optional[Path] = None) -> Optional[Path]:
    """Locate the optional configuration file.

    An explicit path is returned without verification so that
    :func:`read_config` reports a missing file. Otherwise only ``search_dir``
    (the working directory by default) is inspected: the pipeline runs against
    a single directory and must not pick up settings from a parent folder.

    Args:
        explicit_path (Path | None): Path chosen by the caller.
        search_dir (Path | None): Directory to look in when no explicit path is
            given.

    Returns:
        Path | None: The configuration file, or ``None`` when the defaults
            apply.
    """

    if explicit_path:
        return explicit_path

    candidate = (search_dir or Path.cwd()) / CONFIG_FILE_NAME
    if candidate.is_file():
        return candidate
    return None


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load the configuration file and return a populated ``ConfigParser``.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = Path(config_path).expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path, encoding="utf-8")
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    Every entry is optional and falls back to the defaults in
    :mod:`sales_reports.constants`. The ``Directory`` entry is anchored at
    ``base_path`` (the working directory when omitted); file names are in turn
    anchored at that directory, unless they are absolute already.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data. An empty
            parser yields the default settings.
        base_path (Path | None): Anchor for a relative ``Directory`` entry.

    Returns:
        ConfigSettings: Immutable settings with absolute paths.

    Raises:
        ValueError: If the delimiter is empty or the sales prefix is blank.
    """

    base_path = Path(base_path) if base_path is not None else Path.cwd()

    def _get(section: str, option: str, default: str) -> str:
        return parser.get(section, option, fallback=default)

    directory = _anchor(Path(_get("Files", "Directory", ".")), base_path)
    delimiter = _get("Format", "Delimiter", FIELD_DELIMITER)
    if not delimiter:
        raise ValueError("Configuration entry Format.Delimiter must not be empty")
    sales_prefix = _get("Files", "SalesPrefix", SALES_FILE_PREFIX)
    if not sales_prefix.strip():
        raise ValueError("Configuration entry Files.SalesPrefix must not be blank")

    workbook_raw = _get("Reports", "Workbook", "").strip()
    workbook = _anchor(Path(workbook_raw), directory) if workbook_raw else None

    return ConfigSettings(
        directory=directory,
        products_file=_anchor(Path(_get("Files", "Products", DataFile.PRODUCTS.value)), directory),
        salespeople_file=_anchor(Path(_get("Files", "Salespeople", DataFile.SALESPEOPLE.value)), directory),
        sales_prefix=sales_prefix,
        salesperson_report=_anchor(
            Path(_get("Files", "SalespersonReport", DataFile.SALESPERSON_REPORT.value)), directory
        ),
        product_report=_anchor(Path(_get("Files", "ProductReport", DataFile.PRODUCT_REPORT.value)), directory),
        delimiter=delimiter,
        encoding=_get("Format", "Encoding", DEFAULT_ENCODING),
        workbook=workbook,
    )


def _anchor(path: Path, base: Path) -> Path:
    path = path.expanduser()
    if not path.is_absolute():
        path = base / path
    return path.resolve()


def split_fields(line: str, expected: int, *, delimiter: str = FIELD_DELIMITER) -> List[str]:
    """Split ``line`` into exactly ``expected`` positional fields.

    Trailing empty fields are discarded first, so the trailing delimiter of a
    sales line (``1;2;``) does not count as a field.

    Raises:
        MalformedRecordError: If the field count differs from ``expected``.
    """

    fields = line.split(delimiter)
    while len(fields) > 1 and fields[-1] == "":
        fields.pop()
    if len(fields) != expected:
        raise MalformedRecordError(f"expected {expected} fields but found {len(fields)} in {line!r}")
    return fields


def parse_price(raw: str) -> Decimal:
    """Parse a non-negative, finite decimal literal."""

    try:
        price = Decimal(raw)
    except InvalidOperation as exc:
        raise MalformedRecordError(f"invalid price {raw!r}") from exc
    if not price.is_finite() or price < 0:
        raise MalformedRecordError(f"invalid price {raw!r}")
    return price


def parse_quantity(raw: str) -> int:
    """Parse a strictly positive integer literal."""

    if not _QUANTITY_PATTERN.fullmatch(raw):
        raise MalformedRecordError(f"invalid quantity {raw!r}")
    quantity = int(raw)
    if quantity <= 0:
        raise MalformedRecordError(f"quantity must be greater than zero, got {raw!r}")
    return quantity


def deserialize_product(line: str, *, delimiter: str = FIELD_DELIMITER) -> Product:
    """Convert an ``id;name;price`` line into a :class:`Product`."""

    product_id, name, price_raw = split_fields(line, 3, delimiter=delimiter)
    return Product(product_id=product_id, name=name, price=parse_price(price_raw))


def deserialize_salesperson(line: str, *, delimiter: str = FIELD_DELIMITER) -> Salesperson:
    """Convert a ``docType;docNumber;firstNames;surname`` line into a :class:`Salesperson`."""

    document_type, document_number, first_names, surname = split_fields(line, 4, delimiter=delimiter)
    return Salesperson(
        document_type=document_type,
        document_number=document_number,
        first_names=first_names,
        surname=surname,
    )


def deserialize_sales_header(line: str, *, delimiter: str = FIELD_DELIMITER) -> SalesFileHeader:
    """Convert the ``docType;docNumber`` first line of a sales file."""

    document_type, document_number = split_fields(line, 2, delimiter=delimiter)
    return SalesFileHeader(document_type=document_type, document_number=document_number)


def deserialize_sales_record(line: str, *, delimiter: str = FIELD_DELIMITER) -> SalesRecord:
    """Convert a ``productId;quantity;`` line item of a sales file."""

    product_id, quantity_raw = split_fields(line, 2, delimiter=delimiter)
    return SalesRecord(product_id=product_id, quantity=parse_quantity(quantity_raw))


def serialize_product(record: Product, *, delimiter: str = FIELD_DELIMITER) -> str:
    return delimiter.join([record.product_id, record.name, f"{record.price:f}"])


def serialize_salesperson(record: Salesperson, *, delimiter: str = FIELD_DELIMITER) -> str:
    return delimiter.join([record.document_type, record.document_number, record.first_names, record.surname])


def serialize_sales_header(record: SalesFileHeader, *, delimiter: str = FIELD_DELIMITER) -> str:
    return delimiter.join([record.document_type, record.document_number])


def serialize_sales_record(record: SalesRecord, *, delimiter: str = FIELD_DELIMITER) -> str:
    return delimiter.join([record.product_id, str(record.quantity), ""])


def to_cents(amount: Decimal) -> Decimal:
    """Round ``amount`` half up to two decimals, however many digits it has."""

    with localcontext(MONEY_CONTEXT):
        return amount.quantize(_CENTS)


def format_money(amount: Decimal) -> str:
    """Render ``amount`` with exactly two decimals, rounding half up."""

    return f"{to_cents(amount):f}"


def serialize_salesperson_report_line(record: Salesperson, *, delimiter: str = FIELD_DELIMITER) -> str:
    """Render ``Full Name;total`` for the salesperson report."""

    return f"{record.full_name}{delimiter}{format_money(record.total_sales)}"


def serialize_product_report_line(record: Product, *, delimiter: str = FIELD_DELIMITER) -> str:
    """Render ``name;price`` for the product report.

    The accumulated quantity only orders the report and is not written.
    """

    return f"{record.name}{delimiter}{format_money(record.price)}"


def _parse_line_at(source: Path, line_number: int, parse_line: Callable[[str], T], raw: str) -> T:
    line = raw.rstrip("\r\n")
    try:
        return parse_line(line)
    except MalformedRecordError as exc:
        raise MalformedRecordError(str(exc), source=source, line_number=line_number) from exc


def load_keyed(
    path: Path,
    parse_line: Callable[[str], T],
    key_of: Callable[[T], K],
    *,
    encoding: str = DEFAULT_ENCODING,
) -> Dict[K, T]:
    """Read a delimited file into a mapping of records indexed by key.

    Every line becomes one record through ``parse_line``; ``key_of`` extracts
    the mapping key from that record. The load is all-or-nothing: the first
    line that cannot be parsed aborts it. When two lines share a key the later
    record replaces the earlier one.

    Args:
        path (Path): File to read.
        parse_line (Callable[[str], T]): Converts one line, without its line
            terminator, into a record. Must raise
            :class:`MalformedRecordError` for lines it rejects.
        key_of (Callable[[T], K]): Extracts the key of a parsed record.
        encoding (str): Text encoding of the file.

    Returns:
        dict[K, T]: Records keyed by ``key_of``.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        MalformedRecordError: If any line is rejected by ``parse_line``. The
            error names the file and the 1-based line number.
    """

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Source file not found: {path}")

    records: Dict[K, T] = {}
    with path.open("r", encoding=encoding) as handle:
        for line_number, raw in enumerate(handle, start=1):
            record = _parse_line_at(path, line_number, parse_line, raw)
            key = key_of(record)
            if key in records:
                log.debug("Duplicate key '%s' in '%s' line %d replaces earlier record", key, path.name, line_number)
            records[key] = record

    log.info("Loaded %d records from '%s'", len(records), path.name)
    return records


def discover_sales_files(directory: Path, prefix: str = SALES_FILE_PREFIX) -> List[Path]:
    """Find every regular file under ``directory`` whose name starts with ``prefix``.

    Subdirectories are searched as well. The result is sorted so that logs
    and warnings come out in a reproducible order; totals do not depend on it.
    """

    directory = Path(directory)
    found = sorted(path for path in directory.rglob("*") if path.name.startswith(prefix) and path.is_file())
    log.debug("Discovered %d sales files under '%s'", len(found), directory)
    return found


@contextmanager
def open_sales_file(
    path: Path,
    *,
    delimiter: str = FIELD_DELIMITER,
    encoding: str = DEFAULT_ENCODING,
) -> Iterator[Tuple[SalesFileHeader, Iterator[SalesRecord]]]:
    """Open a sales file and expose its header and its line items.

    The header is parsed eagerly. Line items are parsed lazily while the
    caller iterates, so a malformed line only surfaces once the lines before
    it have been handed out. The file is closed when the ``with`` block exits,
    whether it ran to completion, returned early or raised.

    Raises:
        MalformedRecordError: If the file is empty, the header is malformed or
            (during iteration) a line item is malformed.
        OSError: If the file cannot be read.
    """

    path = Path(path)
    with path.open("r", encoding=encoding) as handle:
        first = handle.readline()
        if not first:
            raise MalformedRecordError("sales file is empty", source=path)
        header = _parse_line_at(
            path, 1, lambda line: deserialize_sales_header(line, delimiter=delimiter), first
        )

        def _records() -> Iterator[SalesRecord]:
            for line_number, raw in enumerate(handle, start=2):
                yield _parse_line_at(
                    path, line_number, lambda line: deserialize_sales_record(line, delimiter=delimiter), raw
                )

        yield header, _records()


def write_lines(destination: Path, lines: Iterable[str], *, encoding: str = DEFAULT_ENCODING) -> Path:
    """Write ``lines`` to ``destination``, replacing any previous content.

    Each line is terminated with the platform line separator.
    """

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    with dest.open("w", encoding=encoding) as handle:
        for line in lines:
            handle.write(line)
            handle.write("\n")
    return dest


def build_report_workbook(salespeople: Sequence[Salesperson], products: Sequence[Product]) -> Workbook:
    """Lay out both rankings in a new workbook, one sheet per report.

    Rows keep the order of the given sequences. Unlike the delimited product
    report, the product sheet also shows the quantity sold.
    """

    workbook = openpyxl.Workbook()

    # Remove the default sheet openpyxl generates so we can create ours.
    if workbook.active and workbook.active.title == "Sheet":
        workbook.remove(workbook.active)

    bold_font = Font(bold=True)
    for sheet, columns in REPORT_SHEET_COLUMNS.items():
        worksheet = workbook.create_sheet(title=sheet.value)
        for column_index, column_name in enumerate(columns, start=1):
            cell = worksheet.cell(row=1, column=column_index)
            cell.value = column_name
            cell.font = bold_font

    salespeople_sheet = workbook[ReportSheet.SALESPEOPLE.value]
    for salesperson in salespeople:
        total = to_cents(salesperson.total_sales)
        salespeople_sheet.append([salesperson.full_name, total])
        salespeople_sheet.cell(row=salespeople_sheet.max_row, column=2).number_format = "0.00"

    products_sheet = workbook[ReportSheet.PRODUCTS.value]
    for product in products:
        price = to_cents(product.price)
        products_sheet.append([product.name, price, product.quantity_sold])
        products_sheet.cell(row=products_sheet.max_row, column=2).number_format = "0.00"

    return workbook


def save_workbook(workbook: Workbook, destination: Path) -> Path:
    """Persist the workbook at ``destination``, creating parent folders on demand."""

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(dest)
    return dest
