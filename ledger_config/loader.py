"""
YAML loader for ledger configuration.

Parses the raw YAML mapping into the frozen dataclasses in ``schema``.
Every parse function raises ``KeyError`` for a missing required key and
``ValueError`` for a value that cannot be interpreted.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from ledger_config.schema import (
    ExpenseAccountDef,
    LedgerConfig,
    PostingAccountsDef,
    WithholdingConfig,
    WithholdingSectionDef,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, field_name: str) -> Decimal:
    """
    Parse a Decimal from YAML.

    YAML floats arrive as Python floats; they are converted through ``str``
    so ``0.1`` becomes ``Decimal("0.1")`` rather than its binary expansion.
    """
    if isinstance(value, bool):
        raise ValueError(f"{field_name}: cannot parse decimal from {value!r}")
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"{field_name}: cannot parse decimal from {value!r}") from exc


def parse_posting_accounts(data: dict[str, Any]) -> PostingAccountsDef:
    """Parse the ``posting_accounts`` mapping.  All eight codes are required."""
    return PostingAccountsDef(
        cash=data["cash"],
        bank=data["bank"],
        accounts_receivable=data["accounts_receivable"],
        accounts_payable=data["accounts_payable"],
        sales=data["sales"],
        expenses=data["expenses"],
        tds_expense=data["tds_expense"],
        tds_payable=data["tds_payable"],
    )


def parse_expense_accounts(data: dict[str, Any]) -> tuple[ExpenseAccountDef, ...]:
    """Parse ``expense_accounts``: a mapping of category to account code."""
    return tuple(
        ExpenseAccountDef(category=str(category).upper(), account_code=str(code))
        for category, code in sorted(data.items())
    )


def parse_withholding_section(code: str, data: dict[str, Any]) -> WithholdingSectionDef:
    rate = parse_decimal(data["rate"], f"withholding.sections.{code}.rate")
    if not (Decimal("0") <= rate <= Decimal("100")):
        raise ValueError(f"withholding.sections.{code}.rate must be 0..100, got {rate}")
    return WithholdingSectionDef(
        code=str(code).upper(),
        description=data.get("description", ""),
        rate=rate,
    )


def parse_withholding(data: dict[str, Any]) -> WithholdingConfig:
    sections = data.get("sections", {}) or {}
    return WithholdingConfig(
        sections=tuple(
            parse_withholding_section(str(code), body)
            for code, body in sorted(sections.items())
        )
    )


def parse_ledger_config(data: dict[str, Any], source_path: str | None = None) -> LedgerConfig:
    """
    Parse a complete ``LedgerConfig`` from a dict.

    Preconditions:
        - ``data`` contains ``config_id`` and ``posting_accounts``.
    Raises:
        KeyError: if required keys are missing.
        ValueError: if a numeric field cannot be parsed or is out of range.
    """
    tolerance = parse_decimal(data.get("balance_tolerance", "0.01"), "balance_tolerance")
    if tolerance < 0:
        raise ValueError(f"balance_tolerance must be non-negative, got {tolerance}")

    return LedgerConfig(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        balance_tolerance=tolerance,
        entry_number_prefix=data.get("entry_number_prefix", "JE"),
        posting_accounts=parse_posting_accounts(data["posting_accounts"]),
        expense_accounts=parse_expense_accounts(data.get("expense_accounts", {}) or {}),
        withholding=parse_withholding(data.get("withholding", {}) or {}),
        source_path=source_path,
    )


def load_ledger_config(path: Path) -> LedgerConfig:
    return parse_ledger_config(load_yaml_file(path), source_path=str(path))
