"""Constants shared across the sales report modules.

Centralises file naming conventions, document types and the static pools the
test-data generator draws from, so the data access layer, the reconciliation
logic and the generator agree on a single source of truth.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum


FIELD_DELIMITER = ";"
DEFAULT_ENCODING = "utf-8"
CONFIG_FILE_NAME = "sales_reports.ini"


class DocumentType(str, Enum):
    """Enumerate the identity document types a salesperson may carry."""

    CITIZEN_ID = "CC"
    FOREIGNER_ID = "CE"
    IDENTITY_CARD = "TI"


class DataFile(str, Enum):
    """Enumerate the default file names read and written by the pipeline."""

    PRODUCTS = "productos.csv"
    SALESPEOPLE = "vendedores.csv"
    SALESPERSON_REPORT = "reporte_vendedores.csv"
    PRODUCT_REPORT = "reporte_productos.csv"


SALES_FILE_PREFIX = "vendedor_"
SALES_FILE_SUFFIX = ".csv"


class ReportSheet(str, Enum):
    """Enumerate the sheet names of the optional report workbook."""

    SALESPEOPLE = "Salespeople"
    PRODUCTS = "Products"


REPORT_SHEET_COLUMNS: dict[ReportSheet, tuple[str, ...]] = {
    ReportSheet.SALESPEOPLE: ("Salesperson", "TotalSales"),
    ReportSheet.PRODUCTS: ("ProductName", "UnitPrice", "QuantitySold"),
}


# Generator pools. Read-only: the generator never mutates them.
FIRST_NAMES: tuple[str, ...] = ("Carlos", "Ana", "Luis", "Maria", "Juan")
SURNAMES: tuple[str, ...] = ("Gomez", "Perez", "Rodriguez", "Martinez", "Diaz")
PRODUCT_CATALOG: tuple[tuple[str, Decimal], ...] = (
    ("Laptop", Decimal("2500000.50")),
    ("Mouse", Decimal("80000.00")),
    ("Teclado", Decimal("150000.99")),
    ("Monitor", Decimal("950000.00")),
)


__all__ = [
    "FIELD_DELIMITER",
    "DEFAULT_ENCODING",
    "CONFIG_FILE_NAME",
    "DocumentType",
    "DataFile",
    "SALES_FILE_PREFIX",
    "SALES_FILE_SUFFIX",
    "ReportSheet",
    "REPORT_SHEET_COLUMNS",
    "FIRST_NAMES",
    "SURNAMES",
    "PRODUCT_CATALOG",
]
