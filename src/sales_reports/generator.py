"""Utility for generating pseudo-random sales input files.

The module doubles as a script (``generate-info-files``) and as a library used
by tests. It writes the products file, the salespeople file and one sales file
per salesperson, in the formats the pipeline reads.
"""

from __future__ import annotations

import argparse
import random
import sys
from decimal import Decimal
from pathlib import Path
from typing import List, Sequence, Tuple

from . import data_manager, log
from .constants import (
    FIELD_DELIMITER,
    FIRST_NAMES,
    PRODUCT_CATALOG,
    SALES_FILE_PREFIX,
    SALES_FILE_SUFFIX,
    SURNAMES,
    DataFile,
    DocumentType,
)


DEFAULT_SALESMAN_COUNT = 5
MIN_SALES_LINES = 2
MAX_SALES_LINES = 5
MAX_QUANTITY = 10
DOCUMENT_NUMBER_RANGE = (100_000_000, 999_999_999)


def create_products_file(
    directory: Path,
    products_count: int,
    *,
    catalog: Sequence[Tuple[str, Decimal]] = PRODUCT_CATALOG,
) -> Path:
    """Write the products file with the first ``products_count`` catalog entries.

    Products are numbered from ``1`` in catalog order.

    Raises:
        ValueError: If ``products_count`` is not between 1 and the catalog size.
    """

    if not 1 <= products_count <= len(catalog):
        raise ValueError(f"products_count must be between 1 and {len(catalog)}, got {products_count}")

    products = [
        data_manager.Product(product_id=str(index), name=name, price=price)
        for index, (name, price) in enumerate(catalog[:products_count], start=1)
    ]
    return data_manager.write_lines(
        Path(directory) / DataFile.PRODUCTS.value,
        (data_manager.serialize_product(product, delimiter=FIELD_DELIMITER) for product in products),
    )


def create_sales_file(
    directory: Path,
    salesperson: data_manager.Salesperson,
    sales_count: int,
    *,
    rng: random.Random,
    products_count: int,
) -> Path:
    """Write the sales file of ``salesperson`` with ``sales_count`` line items."""

    header = data_manager.SalesFileHeader(
        document_type=salesperson.document_type,
        document_number=salesperson.document_number,
    )
    lines = [data_manager.serialize_sales_header(header)]
    for _ in range(sales_count):
        record = data_manager.SalesRecord(
            product_id=str(rng.randint(1, products_count)),
            quantity=rng.randint(1, MAX_QUANTITY),
        )
        lines.append(data_manager.serialize_sales_record(record))

    file_name = f"{SALES_FILE_PREFIX}{salesperson.document_number}{SALES_FILE_SUFFIX}"
    return data_manager.write_lines(Path(directory) / file_name, lines)


def random_salespeople(salesman_count: int, *, rng: random.Random) -> List[data_manager.Salesperson]:
    """Draw ``salesman_count`` salespeople with distinct nine-digit document numbers."""

    document_numbers: List[int] = []
    seen = set()
    while len(document_numbers) < salesman_count:
        candidate = rng.randint(*DOCUMENT_NUMBER_RANGE)
        if candidate not in seen:
            seen.add(candidate)
            document_numbers.append(candidate)

    document_types = list(DocumentType)
    return [
        data_manager.Salesperson(
            document_type=rng.choice(document_types).value,
            document_number=str(number),
            first_names=rng.choice(FIRST_NAMES),
            surname=rng.choice(SURNAMES),
        )
        for number in document_numbers
    ]


def create_salesman_info_file(
    directory: Path,
    salesman_count: int,
    *,
    rng: random.Random,
    products_count: int = len(PRODUCT_CATALOG),
) -> List[Path]:
    """Write the salespeople file and one sales file for each salesperson.

    Returns:
        list[Path]: The salespeople file followed by the sales files.
    """

    if salesman_count < 1:
        raise ValueError(f"salesman_count must be at least 1, got {salesman_count}")

    salespeople = random_salespeople(salesman_count, rng=rng)
    written = [
        data_manager.write_lines(
            Path(directory) / DataFile.SALESPEOPLE.value,
            (data_manager.serialize_salesperson(salesperson) for salesperson in salespeople),
        )
    ]
    for salesperson in salespeople:
        sales_count = rng.randint(MIN_SALES_LINES, MAX_SALES_LINES)
        written.append(
            create_sales_file(directory, salesperson, sales_count, rng=rng, products_count=products_count)
        )
    return written


def generate_info_files(
    directory: Path,
    *,
    salesman_count: int = DEFAULT_SALESMAN_COUNT,
    products_count: int | None = None,
    seed: int | None = None,
) -> List[Path]:
    """Generate a complete input set in ``directory``.

    A fixed ``seed`` reproduces the same files.
    """

    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    products_count = len(PRODUCT_CATALOG) if products_count is None else products_count
    rng = random.Random(seed)

    written = [create_products_file(directory, products_count)]
    written.extend(create_salesman_info_file(directory, salesman_count, rng=rng, products_count=products_count))
    log.info("Generated %d input files in '%s'", len(written), directory)
    return written


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the generator script."""

    parser = argparse.ArgumentParser(
        prog="generate-info-files",
        description="Generate pseudo-random products, salespeople and sales files",
    )
    parser.add_argument(
        "--directory",
        type=Path,
        default=Path("."),
        help="Folder that receives the files (default: current directory).",
    )
    parser.add_argument(
        "--salesmen",
        type=int,
        default=DEFAULT_SALESMAN_COUNT,
        help=f"Number of salespeople to generate (default: {DEFAULT_SALESMAN_COUNT}).",
    )
    parser.add_argument(
        "--products",
        type=int,
        default=None,
        help=f"Number of catalog products to write (default: {len(PRODUCT_CATALOG)}).",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed for reproducible output.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the CLI script."""

    args = parse_args(argv)
    directory = args.directory.expanduser().resolve()

    print("--- Sales Input Generator ---")
    print(f"Target folder: {directory}")

    try:
        written = generate_info_files(
            directory,
            salesman_count=args.salesmen,
            products_count=args.products,
            seed=args.seed,
        )
    except ValueError as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except (PermissionError, OSError) as exc:
        print(f"\n[ERROR] Unable to write input files: {exc}")
        return 1

    print(f"\n[SUCCESS] Created {len(written)} files in '{directory}'.")
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    sys.exit(main())
