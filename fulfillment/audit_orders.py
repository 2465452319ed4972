from __future__ import annotations

import argparse
import logging
from collections.abc import Mapping
from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError

from fulfillment.config import settings
from fulfillment.db import SessionLocal
from fulfillment.logging_setup import setup_logging
from fulfillment.services.bom_csv_service import (
    ToolBomAudit,
    audit_tool_against_bom,
    expected_totals_from_boms,
    parse_bom_csv,
)
from fulfillment.services.order_snapshot_service import load_active_order_snapshots, load_order_snapshot
from fulfillment.services.reconciliation_service import (
    OrderSnapshot,
    compute_line_item_status,
    detect_drift,
    line_items_by_part,
    summarize_order,
    tool_display_name,
    tool_display_names,
)
from fulfillment.services.repair_planning_service import (
    ItemToOrder,
    find_excess_picks,
    find_total_mismatches,
    items_to_order,
)

logger = logging.getLogger(__name__)

RULE = '=' * 80


def parse_bom_args(values: list[str] | None) -> dict[str, Path]:
    boms: dict[str, Path] = {}
    for value in values or []:
        tool_number, sep, path = value.partition('=')
        if not sep or not tool_number.strip() or not path.strip():
            raise ValueError(f'BOM must be given as TOOL_NUMBER=PATH, got {value!r}')
        boms[tool_number.strip()] = Path(path.strip())
    return boms


def narrow_boms(boms: Mapping[str, Mapping[str, int]], part_number: str) -> dict[str, dict[str, int]]:
    """Keep only ``part_number`` in each tool's BOM, matching a part-filtered snapshot."""
    return {
        tool_number: ({part_number: bom[part_number]} if part_number in bom else {})
        for tool_number, bom in boms.items()
    }


def _status_label(remaining: int) -> str:
    if remaining < 0:
        return f'OVER-PICKED by {-remaining}'
    if remaining == 0:
        return 'COMPLETE'
    return f'{remaining} remaining'


def print_line_item_table(order: OrderSnapshot) -> None:
    for part_number, items in sorted(line_items_by_part(order).items()):
        split_note = f'  ** SPLIT: {len(items)} line items **' if len(items) > 1 else ''
        description = items[0].description or ''
        print(f'  Part {part_number}{" - " + description if description else ""}{split_note}')
        for item in items:
            status = compute_line_item_status(item, order.picks)
            tools = ', '.join(tool_display_names(item, order.tools))
            print(
                f'    qty_per_unit={item.qty_per_unit}, total_needed={status.total_needed}, '
                f'picked={status.total_picked} ({_status_label(status.remaining)})'
            )
            print(f'      Tools: [{tools}]')


def print_bom_audit(audit: ToolBomAudit) -> int:
    if audit.tool_missing:
        print(f'\n  Tool {audit.tool_number}: not found in database!')
        return 1
    if not audit.has_issues:
        print(f'\n  Tool {audit.tool_number}: all {audit.parts_checked} parts match')
        return 0

    print(f'\n  Tool {audit.tool_number}:')
    for mismatch in audit.mismatches:
        db_qty = mismatch.db_qty if mismatch.db_qty is not None else 'N/A'
        print(f'    MISMATCH: {mismatch.part_number} - BOM qty={mismatch.bom_qty}, DB qty={db_qty} ({mismatch.issue})')
    for part_number, bom_qty in audit.missing_from_db:
        print(f'    MISSING FROM DB: {part_number} - BOM qty={bom_qty}')
    for part_number, db_qty in audit.extra_in_db:
        print(f'    EXTRA IN DB: {part_number} - DB qty={db_qty} (not in BOM)')
    for over in audit.over_picked:
        print(f'    OVER-PICKED: {over.part_number} - BOM qty={over.bom_qty}, picked={over.picked} (over by {over.over_by})')
    return (
        len(audit.mismatches) + len(audit.missing_from_db) + len(audit.extra_in_db) + len(audit.over_picked)
    )


def report_order(order: OrderSnapshot, *, boms: Mapping[str, Mapping[str, int]] | None = None) -> int:
    """Print the audit for one order and return the number of issues found."""
    progress = summarize_order(order)
    print(f'\n{RULE}')
    print(f'SO-{order.so_number} ({len(order.tools)} tools, {progress.line_item_count} line items)')
    print(RULE)
    print(
        f'Progress: {progress.complete_line_item_count}/{progress.line_item_count} line items complete '
        f'({progress.progress_percent}%), {progress.total_picked}/{progress.total_needed} units picked'
    )
    print_line_item_table(order)

    issues = 0
    tools_by_id = {tool.id: tool for tool in order.tools}

    excess = find_excess_picks(order)
    if excess:
        print(f'\n  Excess picks: {len(excess)}')
        for item in excess:
            allowed = ', '.join(tool_display_name(tool_id, tools_by_id) for tool_id in item.allowed_tool_ids)
            print(
                f'    Part {item.part_number}: tool={tool_display_name(item.pick.tool_id, tools_by_id)}, '
                f'qty={item.pick.qty_picked}, by={item.pick.picked_by}, allowed=[{allowed}] [pick_id: {item.pick.id}]'
            )
        issues += len(excess)

    mismatches = find_total_mismatches(order)
    if mismatches:
        print(f'\n  Totals not equal to qty_per_unit x tool count: {len(mismatches)}')
        for mismatch in mismatches:
            print(
                f'    Part {mismatch.part_number}: qty_per_unit={mismatch.qty_per_unit}, tools={mismatch.tool_count}, '
                f'actual={mismatch.actual_total}, expected={mismatch.expected_total}'
            )
        issues += len(mismatches)

    if boms:
        for tool_number, bom in boms.items():
            issues += print_bom_audit(audit_tool_against_bom(order, tool_number, bom))

        print('\n  --- Total quantity check (sum across BOMs vs DB total_qty_needed) ---')
        drifts = detect_drift(order, expected_totals_from_boms(boms.values()))
        bad = [drift for drift in drifts if not drift.is_ok]
        for drift in bad:
            labels = ', '.join(status.value for status in drift.statuses)
            expected = drift.expected_total if drift.expected_total is not None else 'n/a'
            print(
                f'    {drift.part_number}: DB total={drift.db_total}, BOM total={expected}, '
                f'line items={drift.line_item_count} [{labels}]'
            )
        if bad:
            print(f'    {len(drifts) - len(bad)} OK, {len(bad)} with drift')
        else:
            print(f'    All {len(drifts)} part totals match')
        issues += len(bad)
    else:
        split_parts = [part for part, items in line_items_by_part(order).items() if len(items) > 1]
        if split_parts:
            print(f'\n  Split parts: {", ".join(sorted(split_parts))}')
        issues += len(split_parts)

    return issues


def audit_orders(
    so_numbers: list[str],
    *,
    part_number: str | None = None,
    boms: Mapping[str, Mapping[str, int]] | None = None,
) -> tuple[int, int]:
    if boms and part_number is not None:
        boms = narrow_boms(boms, part_number)

    total_issues = 0
    failures = 0
    for so_number in so_numbers:
        try:
            with SessionLocal() as db:
                order = load_order_snapshot(db, so_number, part_number=part_number)
        except SQLAlchemyError:
            logger.exception('Failed to load SO-%s, skipping', so_number)
            failures += 1
            continue

        if order is None:
            print(f'SO-{so_number}: not found, skipping')
            continue
        total_issues += report_order(order, boms=boms)
    return total_issues, failures


def print_items_to_order(items: list[ItemToOrder]) -> None:
    print(f'\n{RULE}')
    print(f'ITEMS TO ORDER ({len(items)} parts short across active orders)')
    print(RULE)
    for item in items:
        orders = ', '.join(f'SO-{source.so_number}:{source.needed - source.picked}' for source in item.sources)
        print(
            f'  {item.part_number}: remaining={item.remaining}, available={item.qty_available}, '
            f'to order={item.qty_to_order} [{orders}]'
        )


def report_items_to_order() -> int:
    try:
        with SessionLocal() as db:
            orders = load_active_order_snapshots(db)
    except SQLAlchemyError:
        logger.exception('Failed to load active orders')
        return 1
    print_items_to_order(items_to_order(orders))
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description='Audit order fulfillment: picks, split line items and total drift.')
    parser.add_argument('so_numbers', nargs='*', help='Sales order numbers to audit (defaults to DEFAULT_SO_NUMBERS).')
    parser.add_argument('--part', dest='part_number', help='Limit the audit to one part number.')
    parser.add_argument(
        '--bom',
        action='append',
        metavar='TOOL_NUMBER=PATH',
        help='Full BOM CSV for one tool; repeat per tool to enable the BOM and drift checks.',
    )
    parser.add_argument(
        '--items-to-order',
        action='store_true',
        help='List parts still short across all active orders instead of auditing single orders.',
    )
    args = parser.parse_args(argv)
    setup_logging(settings.log_level)

    if args.items_to_order:
        return report_items_to_order()

    try:
        boms = {tool_number: parse_bom_csv(path) for tool_number, path in parse_bom_args(args.bom).items()}
    except (OSError, ValueError) as exc:
        parser.error(str(exc))

    total_issues, failures = audit_orders(
        args.so_numbers or list(settings.default_so_numbers),
        part_number=args.part_number,
        boms=boms,
    )

    print(f'\n{RULE}')
    print('SUMMARY')
    print(RULE)
    if total_issues == 0:
        print('Everything looks good!')
    else:
        print(f'{total_issues} issue(s) found - review above')
    return 1 if failures else 0


if __name__ == '__main__':
    raise SystemExit(main())
