"""
tender_engine/line_items.py

Line-Item Resolver.

A package's priced scope lives in one of two shapes:
- PackageLineItem rows snapshotted onto the package (current shape)
- PackageItem join rows onto shared BudgetLine rows (older packages)

resolve_package_lines() reads both once and hands back a tagged result with
canonical lines, so callers never branch on the storage shape again.

Canonical line id:
- SNAPSHOT: the PackageLineItem id
- LEGACY: the BudgetLine id

All arithmetic is Decimal. A line's total is its stored total/amount when present,
else qty * rate, else zero.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import or_

from .errors import PreconditionFailed
from .extensions import db
from .models import BudgetLine, Contract, ContractLineItem, PackageItem, PackageLineItem
from .utils import decimal_sum, parse_decimal, parse_id


class LineSource(enum.Enum):
    SNAPSHOT = "snapshot"
    LEGACY = "legacy"


@dataclass(frozen=True)
class ResolvedLine:
    id: int
    description: Optional[str]
    qty: Decimal
    rate: Decimal
    total: Decimal
    cost_code: Optional[str]
    package_line_item_id: Optional[int]
    budget_line_id: Optional[int]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "qty": self.qty,
            "rate": self.rate,
            "total": self.total,
            "costCode": self.cost_code,
            "packageLineItemId": self.package_line_item_id,
            "budgetLineId": self.budget_line_id,
        }


@dataclass
class ResolvedLines:
    source: LineSource
    lines: List[ResolvedLine] = field(default_factory=list)

    @property
    def subtotal(self) -> Decimal:
        return decimal_sum(line.total for line in self.lines)

    def __bool__(self) -> bool:
        return bool(self.lines)

    def to_dict(self) -> dict:
        return {
            "source": self.source.value,
            "lines": [line.to_dict() for line in self.lines],
            "subtotal": self.subtotal,
        }


@dataclass(frozen=True)
class LineConflict:
    """An existing contract line already covering one of the requested lines."""

    contract_id: Optional[int]
    contract_title: Optional[str]
    package_id: Optional[int]
    supplier: Optional[dict]
    budget_line_id: Optional[int]
    package_line_item_id: Optional[int]

    def to_dict(self) -> dict:
        return {
            "contractId": self.contract_id,
            "contractTitle": self.contract_title,
            "packageId": self.package_id,
            "supplier": self.supplier,
            "budgetLineId": self.budget_line_id,
            "packageLineItemId": self.package_line_item_id,
        }


# ---------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------
def line_total(total, qty, rate) -> Decimal:
    """Stored total wins; else qty * rate; else 0."""
    stored = parse_decimal(total)
    if stored is not None:
        return stored
    qty_d = parse_decimal(qty)
    rate_d = parse_decimal(rate)
    if qty_d is not None and rate_d is not None:
        return qty_d * rate_d
    return Decimal("0")


def _from_snapshot(row: PackageLineItem) -> ResolvedLine:
    return ResolvedLine(
        id=row.id,
        description=row.description,
        qty=parse_decimal(row.qty) or Decimal("0"),
        rate=parse_decimal(row.rate) or Decimal("0"),
        total=line_total(row.total, row.qty, row.rate),
        cost_code=row.cost_code,
        package_line_item_id=row.id,
        budget_line_id=row.budget_line_id,
    )


def _from_budget_line(row: BudgetLine) -> ResolvedLine:
    return ResolvedLine(
        id=row.id,
        description=row.description,
        qty=parse_decimal(row.qty) or Decimal("0"),
        rate=parse_decimal(row.rate) or Decimal("0"),
        total=line_total(row.amount, row.qty, row.rate),
        cost_code=row.cost_code,
        package_line_item_id=None,
        budget_line_id=row.id,
    )


def resolve_package_lines(tenant_id: str, package_id: int) -> ResolvedLines:
    """Snapshot rows first (by id); fall back to legacy PackageItem -> BudgetLine."""
    snapshot_rows = (
        PackageLineItem.query.filter_by(tenant_id=tenant_id, package_id=package_id)
        .order_by(PackageLineItem.id.asc())
        .all()
    )
    if snapshot_rows:
        return ResolvedLines(LineSource.SNAPSHOT, [_from_snapshot(r) for r in snapshot_rows])

    legacy_rows = (
        db.session.query(BudgetLine)
        .join(PackageItem, PackageItem.budget_line_id == BudgetLine.id)
        .filter(
            PackageItem.tenant_id == tenant_id,
            PackageItem.package_id == package_id,
            BudgetLine.tenant_id == tenant_id,
        )
        .order_by(PackageItem.id.asc())
        .all()
    )
    return ResolvedLines(LineSource.LEGACY, [_from_budget_line(r) for r in legacy_rows])


# ---------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------
def _normalize_ids(raw_ids: Iterable) -> tuple[List[int], List]:
    """Split raw ids into (valid positive ints in order, invalid originals)."""
    valid: List[int] = []
    invalid: List = []
    for raw in raw_ids:
        parsed = parse_id(raw)
        if parsed is None:
            invalid.append(raw)
        elif parsed not in valid:
            valid.append(parsed)
    return valid, invalid


def _select(resolved: ResolvedLines, raw_ids: Sequence, key) -> ResolvedLines:
    wanted, invalid = _normalize_ids(raw_ids)
    by_key = {key(line): line for line in resolved.lines if key(line) is not None}

    unknown = invalid + [line_id for line_id in wanted if line_id not in by_key]
    if unknown:
        raise PreconditionFailed(
            "LINE_IDS_INVALID",
            "Some selected lines do not belong to this package.",
            invalidIds=unknown,
        )

    wanted_set = set(wanted)
    chosen = [line for line in resolved.lines if key(line) in wanted_set]
    return ResolvedLines(resolved.source, chosen)


def select_lines(resolved: ResolvedLines, line_ids: Optional[Sequence]) -> ResolvedLines:
    """Subset by canonical line id. None or empty means every line."""
    if not line_ids:
        return resolved
    return _select(resolved, line_ids, key=lambda line: line.id)


def select_lines_by_budget_line(resolved: ResolvedLines, budget_line_ids: Optional[Sequence]) -> ResolvedLines:
    """Subset by budget line id (POST /awards payload shape)."""
    if not budget_line_ids:
        return resolved
    return _select(resolved, budget_line_ids, key=lambda line: line.budget_line_id)


# ---------------------------------------------------------------------
# Conflicts
# ---------------------------------------------------------------------
def find_line_conflicts(tenant_id: str, lines: Iterable[ResolvedLine]) -> List[LineConflict]:
    """
    Existing ContractLineItems (any contract in the tenant) that reference one of
    the lines by budget line id or package line id. One record per contract line.
    """
    lines = list(lines)
    budget_ids = sorted({line.budget_line_id for line in lines if line.budget_line_id is not None})
    package_line_ids = sorted(
        {line.package_line_item_id for line in lines if line.package_line_item_id is not None}
    )
    if not budget_ids and not package_line_ids:
        return []

    clauses = []
    if budget_ids:
        clauses.append(ContractLineItem.budget_line_id.in_(budget_ids))
    if package_line_ids:
        clauses.append(ContractLineItem.package_line_item_id.in_(package_line_ids))

    rows = (
        db.session.query(ContractLineItem, Contract)
        .join(Contract, Contract.id == ContractLineItem.contract_id)
        .filter(ContractLineItem.tenant_id == tenant_id, or_(*clauses))
        .order_by(ContractLineItem.id.asc())
        .all()
    )

    conflicts: List[LineConflict] = []
    for line_item, contract in rows:
        conflicts.append(
            LineConflict(
                contract_id=contract.id,
                contract_title=contract.title,
                package_id=contract.package_id,
                supplier=contract.supplier.to_ref() if contract.supplier else None,
                budget_line_id=line_item.budget_line_id,
                package_line_item_id=line_item.package_line_item_id,
            )
        )
    return conflicts
