from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from fulfillment.services.reconciliation_service import (
    LineItemSnapshot,
    OrderSnapshot,
    PickSnapshot,
    applicable_tool_count,
    line_items_by_part,
    picked_by_line_item,
)


@dataclass(frozen=True)
class ExcessPick:
    so_number: str
    part_number: str
    line_item_id: str
    qty_per_unit: int
    allowed_tool_ids: tuple[str, ...]
    pick: PickSnapshot


@dataclass(frozen=True)
class TotalMismatch:
    so_number: str
    line_item_id: str
    part_number: str
    qty_per_unit: int
    tool_count: int
    actual_total: int

    @property
    def expected_total(self) -> int:
        return self.qty_per_unit * self.tool_count


@dataclass(frozen=True)
class MergePlan:
    so_number: str
    part_number: str
    keep_line_item_id: str
    delete_line_item_ids: tuple[str, ...]
    qty_per_unit: int
    total_qty_needed: int
    tool_ids: tuple[str, ...] | None
    picks_to_migrate: tuple[PickSnapshot, ...] = ()
    skipped_reason: str | None = None

    @property
    def is_skipped(self) -> bool:
        return self.skipped_reason is not None


@dataclass(frozen=True)
class ItemToOrderSource:
    so_number: str
    line_item_id: str
    needed: int
    picked: int


@dataclass(frozen=True)
class ItemToOrder:
    part_number: str
    description: str | None
    qty_available: int
    total_needed: int
    total_picked: int
    sources: tuple[ItemToOrderSource, ...]

    @property
    def remaining(self) -> int:
        return self.total_needed - self.total_picked

    @property
    def qty_to_order(self) -> int:
        return max(0, self.remaining - self.qty_available)


def find_excess_picks(order: OrderSnapshot) -> list[ExcessPick]:
    """Picks recorded for a tool outside their line item's tool scope.

    Order-wide line items accept picks for any tool, so they never produce
    excess picks.
    """
    by_id = {item.id: item for item in order.line_items}
    excess: list[ExcessPick] = []
    for pick in order.picks:
        if not pick.is_active:
            continue
        line_item = by_id.get(pick.line_item_id)
        if line_item is None or line_item.is_order_wide:
            continue
        if pick.tool_id in (line_item.tool_ids or ()):
            continue
        excess.append(
            ExcessPick(
                so_number=order.so_number,
                part_number=line_item.part_number,
                line_item_id=line_item.id,
                qty_per_unit=line_item.qty_per_unit,
                allowed_tool_ids=tuple(line_item.tool_ids or ()),
                pick=pick,
            )
        )
    return excess


def find_total_mismatches(order: OrderSnapshot) -> list[TotalMismatch]:
    if not order.tools:
        return []

    mismatches: list[TotalMismatch] = []
    for line_item in order.line_items:
        tool_count = applicable_tool_count(line_item, order.tools)
        if line_item.total_qty_needed == line_item.qty_per_unit * tool_count:
            continue
        mismatches.append(
            TotalMismatch(
                so_number=order.so_number,
                line_item_id=line_item.id,
                part_number=line_item.part_number,
                qty_per_unit=line_item.qty_per_unit,
                tool_count=tool_count,
                actual_total=line_item.total_qty_needed,
            )
        )
    return mismatches


def _merged_tool_ids(items: list[LineItemSnapshot], all_tool_ids: set[str]) -> tuple[str, ...] | None:
    union: list[str] = []
    for item in items:
        if item.is_order_wide:
            return None
        for tool_id in item.tool_ids or ():
            if tool_id not in union:
                union.append(tool_id)
    if all_tool_ids and all_tool_ids.issubset(union):
        return None
    return tuple(union)


def plan_split_merges(
    order: OrderSnapshot,
    *,
    only_mixed_quantities: bool = True,
    migrate_picks: bool = False,
    part_number: str | None = None,
) -> list[MergePlan]:
    """Collapse each split part into its first line item.

    The merged line item takes the smallest ``qty_per_unit`` of the group so a
    partial pick can always top up, and the sum of the group's totals. Undone
    picks count as picks here: deleting their line item would cascade to them.
    """
    all_tool_ids = {tool.id for tool in order.tools}
    picks_by_line_item: dict[str, list[PickSnapshot]] = {}
    for pick in order.picks:
        picks_by_line_item.setdefault(pick.line_item_id, []).append(pick)

    plans: list[MergePlan] = []
    for part, items in line_items_by_part(order).items():
        if part_number is not None and part != part_number:
            continue
        if len(items) <= 1:
            continue
        if only_mixed_quantities and len({item.qty_per_unit for item in items}) <= 1:
            continue

        keep, *duplicates = items
        picks_on_duplicates = tuple(
            pick for item in duplicates for pick in picks_by_line_item.get(item.id, [])
        )
        has_picks = any(picks_by_line_item.get(item.id) for item in items)

        skipped_reason = None
        if has_picks and not migrate_picks:
            skipped_reason = 'has existing picks'

        plans.append(
            MergePlan(
                so_number=order.so_number,
                part_number=part,
                keep_line_item_id=keep.id,
                delete_line_item_ids=tuple(item.id for item in duplicates),
                qty_per_unit=min(item.qty_per_unit for item in items),
                total_qty_needed=sum(item.total_qty_needed for item in items),
                tool_ids=_merged_tool_ids(items, all_tool_ids),
                picks_to_migrate=picks_on_duplicates if migrate_picks else (),
                skipped_reason=skipped_reason,
            )
        )
    return plans


def is_partial_order(order: OrderSnapshot | None) -> bool:
    if order is None:
        return False
    return not order.tools and not order.picks


def items_to_order(orders: Iterable[OrderSnapshot]) -> list[ItemToOrder]:
    totals: dict[str, dict] = {}
    for order in orders:
        if order.status is not None and order.status != 'active':
            continue
        picked = picked_by_line_item(order.picks)
        for line_item in order.line_items:
            line_picked = picked.get(line_item.id, 0)
            remaining = line_item.total_qty_needed - line_picked
            qty_available = line_item.qty_available or 0
            if remaining <= 0 or qty_available >= remaining:
                continue

            entry = totals.setdefault(
                line_item.part_number,
                {
                    'description': line_item.description,
                    'qty_available': qty_available,
                    'total_needed': 0,
                    'total_picked': 0,
                    'sources': [],
                },
            )
            entry['total_needed'] += line_item.total_qty_needed
            entry['total_picked'] += line_picked
            entry['sources'].append(
                ItemToOrderSource(
                    so_number=order.so_number,
                    line_item_id=line_item.id,
                    needed=line_item.total_qty_needed,
                    picked=line_picked,
                )
            )

    return [
        ItemToOrder(
            part_number=part_number,
            description=entry['description'],
            qty_available=entry['qty_available'],
            total_needed=entry['total_needed'],
            total_picked=entry['total_picked'],
            sources=tuple(entry['sources']),
        )
        for part_number, entry in sorted(totals.items())
    ]
