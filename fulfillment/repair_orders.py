from __future__ import annotations

import argparse
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fulfillment.config import settings
from fulfillment.db import SessionLocal
from fulfillment.logging_setup import setup_logging
from fulfillment.services.device_settings_service import JsonFileSettingsStore, display_name, load_settings
from fulfillment.services.order_snapshot_service import load_order_snapshot
from fulfillment.services.reconciliation_service import OrderSnapshot, tool_display_name
from fulfillment.services.repair_planning_service import (
    find_excess_picks,
    find_total_mismatches,
    is_partial_order,
    plan_split_merges,
)
from fulfillment.services.repair_service import (
    apply_merge_plans,
    delete_excess_picks,
    delete_partial_order,
    fix_total_mismatches,
)

logger = logging.getLogger(__name__)

COMMANDS = ('excess-picks', 'merge-splits', 'fix-totals', 'cleanup-partial')


def _tool_names(order: OrderSnapshot, tool_ids) -> str:
    if tool_ids is None:
        return 'ALL (shared)'
    tools_by_id = {tool.id: tool for tool in order.tools}
    return ', '.join(tool_display_name(tool_id, tools_by_id) for tool_id in tool_ids)


def repair_excess_picks(db: Session, order: OrderSnapshot, *, part_number: str | None, execute: bool) -> int:
    excess = [item for item in find_excess_picks(order) if part_number is None or item.part_number == part_number]
    tools_by_id = {tool.id: tool for tool in order.tools}
    for item in excess:
        print(f'  Part {item.part_number} (qty_per_unit={item.qty_per_unit})')
        print(f'    Allowed tools: [{_tool_names(order, item.allowed_tool_ids)}]')
        print(
            f'    Excess pick: tool={tool_display_name(item.pick.tool_id, tools_by_id)}, qty={item.pick.qty_picked}, '
            f'by={item.pick.picked_by}, at={item.pick.picked_at} [pick_id: {item.pick.id}]'
        )
    if not excess:
        print('  No excess picks found.')
        return 0
    if execute:
        result = delete_excess_picks(db, excess)
        print(f'  Deleted: {result.applied}, not found: {result.skipped}')
    return len(excess)


def repair_split_merges(
    db: Session,
    order: OrderSnapshot,
    *,
    part_number: str | None,
    migrate_picks: bool,
    execute: bool,
) -> int:
    plans = plan_split_merges(
        order,
        only_mixed_quantities=not migrate_picks,
        migrate_picks=migrate_picks,
        part_number=part_number,
    )
    for plan in plans:
        if plan.is_skipped:
            print(f'  Part {plan.part_number}: SKIPPED ({plan.skipped_reason}; rerun with --migrate-picks)')
            continue
        print(f'\n  Part {plan.part_number}')
        print(f'    Before: {1 + len(plan.delete_line_item_ids)} line items')
        print(
            f'    After:  1 line item - qty_per_unit={plan.qty_per_unit}, total_qty_needed={plan.total_qty_needed}, '
            f'tools=[{_tool_names(order, plan.tool_ids)}]'
        )
        print(f'    Keeping line item {plan.keep_line_item_id}, deleting {len(plan.delete_line_item_ids)} duplicate(s)')
        if plan.picks_to_migrate:
            print(f'    Migrating {len(plan.picks_to_migrate)} pick(s) onto the kept line item')
    if not plans:
        print('  No split line items to merge.')
        return 0
    if execute:
        result = apply_merge_plans(db, plans)
        print(f'  Merged: {result.applied}, skipped: {result.skipped}')
    return len(plans)


def repair_totals(db: Session, order: OrderSnapshot, *, part_number: str | None, execute: bool) -> int:
    mismatches = [m for m in find_total_mismatches(order) if part_number is None or m.part_number == part_number]
    for mismatch in mismatches:
        print(
            f'  Part {mismatch.part_number}: qty_per_unit={mismatch.qty_per_unit}, tools={mismatch.tool_count}, '
            f'actual={mismatch.actual_total}, expected={mismatch.expected_total}'
        )
    if not mismatches:
        print('  All totals are correct.')
        return 0
    if execute:
        result = fix_total_mismatches(db, mismatches)
        print(f'  Updated {result.applied} line item(s)')
    return len(mismatches)


def repair_partial(db: Session, order: OrderSnapshot, *, execute: bool) -> int:
    if not is_partial_order(order):
        print(f'  SO-{order.so_number} has {len(order.tools)} tool(s) and {len(order.picks)} pick(s); leaving it alone.')
        return 0
    print(f'  SO-{order.so_number} is a partial import ({len(order.line_items)} line items, no tools or picks).')
    if execute:
        if delete_partial_order(db, order.so_number):
            print('    Deleted')
        else:
            print('    Not deleted (order changed since it was loaded)')
    return 1


def run_repair(command: str, so_number: str, *, part_number: str | None, migrate_picks: bool, execute: bool) -> int:
    with SessionLocal() as db:
        # Partial-import detection needs every pick on the order, not one part's.
        scoped_part = None if command == 'cleanup-partial' else part_number
        order = load_order_snapshot(db, so_number, part_number=scoped_part)
        if order is None:
            if command == 'cleanup-partial':
                print(f'SO-{so_number}: not found (already clean)')
            else:
                print(f'SO-{so_number}: not found, skipping')
            return 0

        print(f'\n--- SO-{so_number} ---')
        if command == 'excess-picks':
            found = repair_excess_picks(db, order, part_number=part_number, execute=execute)
        elif command == 'merge-splits':
            found = repair_split_merges(db, order, part_number=part_number, migrate_picks=migrate_picks, execute=execute)
        elif command == 'fix-totals':
            found = repair_totals(db, order, part_number=part_number, execute=execute)
        elif command == 'cleanup-partial':
            found = repair_partial(db, order, execute=execute)
        else:
            raise ValueError(f'Unknown repair command: {command}')

        if execute:
            db.commit()
        else:
            db.rollback()
        return found


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description='Repair fulfillment data drift. Dry run unless --execute is given.')
    parser.add_argument('command', choices=COMMANDS)
    parser.add_argument('so_numbers', nargs='*', help='Sales order numbers to repair (defaults to DEFAULT_SO_NUMBERS).')
    parser.add_argument('--part', dest='part_number', help='Limit the repair to one part number.')
    parser.add_argument(
        '--migrate-picks',
        action='store_true',
        help='merge-splits: also merge parts that already have picks, moving picks onto the kept line item.',
    )
    parser.add_argument('--execute', action='store_true', help='Apply changes instead of printing the plan.')
    args = parser.parse_args(argv)
    setup_logging(settings.log_level)

    if args.command == 'cleanup-partial' and not args.so_numbers:
        parser.error('cleanup-partial needs explicit sales order numbers')

    operator = display_name(load_settings(JsonFileSettingsStore(settings.device_settings_path)))
    if args.execute:
        print(f'EXECUTE MODE - changes will be applied (operator: {operator})')
    else:
        print('DRY RUN - no changes will be made (use --execute to apply)')

    total = 0
    failures = 0
    for so_number in args.so_numbers or list(settings.default_so_numbers):
        try:
            total += run_repair(
                args.command,
                so_number,
                part_number=args.part_number,
                migrate_picks=args.migrate_picks,
                execute=args.execute,
            )
        except SQLAlchemyError:
            logger.exception('Repair of SO-%s failed, skipping', so_number)
            failures += 1

    if args.execute:
        logger.info('Repair %s run by %s touched %s item(s)', args.command, operator, total)
        print('\nDone.')
    else:
        print(f'\nDRY RUN complete. {total} item(s) would be changed. Run with --execute to apply.')
    return 1 if failures else 0


if __name__ == '__main__':
    raise SystemExit(main())
