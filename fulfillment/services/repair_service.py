from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from fulfillment.models import LineItem, Order, Pick, Tool
from fulfillment.services.repair_planning_service import ExcessPick, MergePlan, TotalMismatch

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RepairResult:
    applied: int = 0
    skipped: int = 0


def delete_excess_picks(db: Session, excess_picks: Iterable[ExcessPick]) -> RepairResult:
    pick_ids = [excess.pick.id for excess in excess_picks]
    if not pick_ids:
        return RepairResult()
    result = db.execute(delete(Pick).where(Pick.id.in_(pick_ids)))
    deleted = result.rowcount or 0
    logger.info('Deleted %s excess pick(s)', deleted)
    return RepairResult(applied=deleted, skipped=len(pick_ids) - deleted)


def apply_merge_plan(db: Session, plan: MergePlan) -> bool:
    if plan.is_skipped:
        logger.info('Skipping merge of part %s on SO-%s: %s', plan.part_number, plan.so_number, plan.skipped_reason)
        return False

    if plan.picks_to_migrate:
        db.execute(
            update(Pick)
            .where(Pick.id.in_([pick.id for pick in plan.picks_to_migrate]))
            .values(line_item_id=plan.keep_line_item_id)
        )

    db.execute(
        update(LineItem)
        .where(LineItem.id == plan.keep_line_item_id)
        .values(
            qty_per_unit=plan.qty_per_unit,
            total_qty_needed=plan.total_qty_needed,
            tool_ids=list(plan.tool_ids) if plan.tool_ids is not None else None,
        )
    )
    if plan.delete_line_item_ids:
        db.execute(delete(LineItem).where(LineItem.id.in_(list(plan.delete_line_item_ids))))

    logger.info(
        'Merged part %s on SO-%s into line item %s (%s duplicate(s) removed)',
        plan.part_number,
        plan.so_number,
        plan.keep_line_item_id,
        len(plan.delete_line_item_ids),
    )
    return True


def apply_merge_plans(db: Session, plans: Iterable[MergePlan]) -> RepairResult:
    applied = 0
    skipped = 0
    for plan in plans:
        if apply_merge_plan(db, plan):
            applied += 1
        else:
            skipped += 1
    return RepairResult(applied=applied, skipped=skipped)


def fix_total_mismatches(db: Session, mismatches: Iterable[TotalMismatch]) -> RepairResult:
    applied = 0
    for mismatch in mismatches:
        db.execute(
            update(LineItem)
            .where(LineItem.id == mismatch.line_item_id)
            .values(total_qty_needed=mismatch.expected_total)
        )
        applied += 1
    return RepairResult(applied=applied)


def delete_partial_order(db: Session, so_number: str) -> bool:
    """Delete an order left behind by a failed import.

    The order is only removed when the store still shows no tools and no
    picks for it; the check is repeated here so a stale snapshot cannot cause
    a populated order to be deleted.
    """
    order = db.execute(select(Order).where(Order.so_number == so_number)).scalar_one_or_none()
    if order is None:
        return False

    tool_count = db.execute(select(func.count(Tool.id)).where(Tool.order_id == order.id)).scalar_one()
    pick_count = db.execute(
        select(func.count(Pick.id)).join(LineItem, LineItem.id == Pick.line_item_id).where(LineItem.order_id == order.id)
    ).scalar_one()
    if tool_count or pick_count:
        logger.warning(
            'Refusing to delete SO-%s: %s tool(s), %s pick(s) present', so_number, tool_count, pick_count
        )
        return False

    db.execute(delete(Order).where(Order.id == order.id))
    logger.info('Deleted partial SO-%s (%s)', so_number, order.id)
    return True
