"""Shared pytest fixtures and utilities for the sales report tests."""

from __future__ import annotations

import configparser
import sys
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterable, Iterator, Sequence

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

src_str = str(SRC_DIR)
if src_str not in sys.path:
    sys.path.insert(0, src_str)

from sales_reports import core_logic, data_manager  # noqa: E402

PRODUCT_LINES = ("1;Laptop;2500000.50", "2;Mouse;80000.00")
SALESPERSON_LINES = ("CC;100000001;Ana;Perez",)
SALES_LINES = ("CC;100000001", "1;2;", "2;3;")


def write_source(path: Path, lines: Iterable[str]) -> Path:
    """Write ``lines`` to ``path`` with a terminating newline on every line."""

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("".join(f"{line}\n" for line in lines), encoding="utf-8")
    return path


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture
def source_factory(tmp_path: Path) -> Callable[[str, Sequence[str]], Path]:
    """Factory writing a source file relative to the temporary directory."""

    def _write(name: str, lines: Sequence[str]) -> Path:
        return write_source(tmp_path / name, lines)

    return _write


@pytest.fixture
def scenario_dir(tmp_path: Path) -> Path:
    """Directory holding one salesperson who sold two laptops and three mice."""

    directory = tmp_path / "scenario"
    write_source(directory / "productos.csv", PRODUCT_LINES)
    write_source(directory / "vendedores.csv", SALESPERSON_LINES)
    write_source(directory / "vendedor_100000001.csv", SALES_LINES)
    return directory


@pytest.fixture
def settings_for() -> Callable[[Path], data_manager.ConfigSettings]:
    """Return a callable producing default settings anchored at a directory."""

    def _settings(directory: Path) -> data_manager.ConfigSettings:
        return data_manager.parse_settings(configparser.ConfigParser(), base_path=directory)

    return _settings


@pytest.fixture
def settings(scenario_dir: Path, settings_for) -> data_manager.ConfigSettings:
    """Default settings for the scenario directory."""

    return settings_for(scenario_dir)


@pytest.fixture
def context(settings: data_manager.ConfigSettings) -> core_logic.RuntimeContext:
    """Runtime context loaded from the scenario directory through the public API."""

    return core_logic.load_runtime_context(settings)


@pytest.fixture
def context_factory(tmp_path: Path, settings_for) -> Callable[..., core_logic.RuntimeContext]:
    """Build in-memory contexts without touching source files."""

    def _build(
        *,
        products: Sequence[tuple[str, str, str]] = (),
        salespeople: Sequence[tuple[str, str, str, str]] = (),
    ) -> core_logic.RuntimeContext:
        product_table = {
            product_id: data_manager.Product(product_id, name, Decimal(price))
            for product_id, name, price in products
        }
        salesperson_table = {
            number: data_manager.Salesperson(doc_type, number, first_names, surname)
            for doc_type, number, first_names, surname in salespeople
        }
        return core_logic.RuntimeContext(
            settings=settings_for(tmp_path),
            products=product_table,
            salespeople=salesperson_table,
        )

    return _build
