from __future__ import annotations

import unittest
from datetime import datetime, timezone

from fulfillment.services.reconciliation_service import (
    SHARED_TOOLS_LABEL,
    DriftStatus,
    LineItemSnapshot,
    OrderSnapshot,
    PickSnapshot,
    ToolSnapshot,
    aggregate_by_part,
    compute_line_item_status,
    detect_drift,
    resolve_applicable_tools,
    summarize_order,
    tool_display_names,
)

TOOLS = (
    ToolSnapshot(id='t1', tool_number='3930-1'),
    ToolSnapshot(id='t2', tool_number='3930-2'),
    ToolSnapshot(id='t3', tool_number='3930-3'),
)


def _pick(pick_id: str, line_item_id: str, tool_id: str, qty: int, **kwargs) -> PickSnapshot:
    return PickSnapshot(id=pick_id, line_item_id=line_item_id, tool_id=tool_id, qty_picked=qty, **kwargs)


class ComputeLineItemStatusTests(unittest.TestCase):
    def test_remaining_is_needed_minus_picked(self) -> None:
        item = LineItemSnapshot(id='li-1', part_number='613279', qty_per_unit=4, total_qty_needed=24)
        picks = [_pick('p1', 'li-1', 't1', 8), _pick('p2', 'li-1', 't2', 8), _pick('p3', 'li-1', 't3', 8)]
        status = compute_line_item_status(item, picks)
        self.assertEqual(status.total_needed, 24)
        self.assertEqual(status.total_picked, 24)
        self.assertEqual(status.remaining, 0)
        self.assertTrue(status.is_complete)

    def test_partial_pick_is_not_complete(self) -> None:
        item = LineItemSnapshot(id='li-1', part_number='P-1', qty_per_unit=2, total_qty_needed=6)
        status = compute_line_item_status(item, [_pick('p1', 'li-1', 't1', 2)])
        self.assertEqual(status.remaining, 4)
        self.assertFalse(status.is_complete)

    def test_picks_for_other_line_items_are_ignored(self) -> None:
        item = LineItemSnapshot(id='li-1', part_number='P-1', qty_per_unit=1, total_qty_needed=3)
        status = compute_line_item_status(item, [_pick('p1', 'li-2', 't1', 3), _pick('p2', 'li-1', 't1', 1)])
        self.assertEqual(status.total_picked, 1)
        self.assertEqual(status.remaining, 2)

    def test_missing_or_empty_picks_count_as_zero(self) -> None:
        item = LineItemSnapshot(id='li-1', part_number='P-1', qty_per_unit=1, total_qty_needed=3)
        self.assertEqual(compute_line_item_status(item, None).total_picked, 0)
        self.assertEqual(compute_line_item_status(item, []).remaining, 3)

    def test_over_pick_reports_negative_remaining(self) -> None:
        item = LineItemSnapshot(id='li-1', part_number='P-1', qty_per_unit=1, total_qty_needed=3)
        status = compute_line_item_status(item, [_pick('p1', 'li-1', 't1', 5)])
        self.assertEqual(status.remaining, -2)
        self.assertTrue(status.is_complete)
        self.assertTrue(status.is_over_picked)

    def test_undone_picks_are_excluded(self) -> None:
        item = LineItemSnapshot(id='li-1', part_number='P-1', qty_per_unit=1, total_qty_needed=3)
        undone = _pick('p1', 'li-1', 't1', 3, undone_at=datetime(2026, 1, 5, tzinfo=timezone.utc))
        status = compute_line_item_status(item, [undone, _pick('p2', 'li-1', 't2', 1)])
        self.assertEqual(status.total_picked, 1)


class ResolveApplicableToolsTests(unittest.TestCase):
    def test_null_tool_ids_applies_to_every_tool(self) -> None:
        item = LineItemSnapshot(id='li-1', part_number='P-1', qty_per_unit=1, total_qty_needed=3, tool_ids=None)
        self.assertEqual(resolve_applicable_tools(item, TOOLS), TOOLS)

    def test_empty_tool_ids_applies_to_every_tool(self) -> None:
        item = LineItemSnapshot(id='li-1', part_number='P-1', qty_per_unit=1, total_qty_needed=3, tool_ids=())
        self.assertEqual(resolve_applicable_tools(item, TOOLS), TOOLS)

    def test_scoped_tool_ids_select_exactly_those_tools(self) -> None:
        item = LineItemSnapshot(id='li-1', part_number='P-1', qty_per_unit=1, total_qty_needed=2, tool_ids=('t3', 't1'))
        resolved = resolve_applicable_tools(item, TOOLS)
        self.assertEqual({tool.id for tool in resolved}, {'t1', 't3'})

    def test_deleted_tool_reference_resolves_to_nothing(self) -> None:
        item = LineItemSnapshot(id='li-1', part_number='P-1', qty_per_unit=1, total_qty_needed=1, tool_ids=('gone',))
        self.assertEqual(resolve_applicable_tools(item, TOOLS), ())
        self.assertEqual(tool_display_names(item, TOOLS), ['gone'])

    def test_display_names_for_shared_and_scoped_items(self) -> None:
        shared = LineItemSnapshot(id='li-1', part_number='P-1', qty_per_unit=1, total_qty_needed=3)
        scoped = LineItemSnapshot(id='li-2', part_number='P-2', qty_per_unit=1, total_qty_needed=1, tool_ids=('t2',))
        self.assertEqual(tool_display_names(shared, TOOLS), [SHARED_TOOLS_LABEL])
        self.assertEqual(tool_display_names(scoped, TOOLS), ['3930-2'])


class AggregateByPartTests(unittest.TestCase):
    def test_split_line_items_are_combined_and_flagged(self) -> None:
        order = OrderSnapshot(
            id='o-1',
            so_number='3930',
            tools=TOOLS,
            line_items=(
                LineItemSnapshot(id='li-1', part_number='613278', qty_per_unit=2, total_qty_needed=6),
                LineItemSnapshot(id='li-2', part_number='613278', qty_per_unit=4, total_qty_needed=4, tool_ids=('t1',)),
                LineItemSnapshot(id='li-3', part_number='100001', qty_per_unit=1, total_qty_needed=3),
            ),
            picks=(_pick('p1', 'li-1', 't1', 2), _pick('p2', 'li-2', 't1', 4)),
        )
        aggregates = aggregate_by_part(order)
        split = aggregates['613278']
        self.assertEqual(split.total_needed, 10)
        self.assertEqual(split.total_picked, 6)
        self.assertEqual(split.remaining, 4)
        self.assertEqual(split.line_item_count, 2)
        self.assertTrue(split.is_split)
        self.assertIsNone(split.matches_expected)
        self.assertFalse(aggregates['100001'].is_split)

    def test_expected_totals_are_compared(self) -> None:
        order = OrderSnapshot(
            id='o-1',
            so_number='3930',
            line_items=(LineItemSnapshot(id='li-1', part_number='P-1', qty_per_unit=2, total_qty_needed=6),),
        )
        aggregates = aggregate_by_part(order, {'P-1': 6})
        self.assertEqual(aggregates['P-1'].expected_total, 6)
        self.assertTrue(aggregates['P-1'].matches_expected)
        self.assertFalse(aggregate_by_part(order, {'P-1': 5})['P-1'].matches_expected)

    def test_missing_or_empty_order_yields_empty_aggregates(self) -> None:
        self.assertEqual(aggregate_by_part(None), {})
        self.assertEqual(aggregate_by_part(OrderSnapshot(id='o-1', so_number='1')), {})


class DetectDriftTests(unittest.TestCase):
    def _order(self) -> OrderSnapshot:
        return OrderSnapshot(
            id='o-1',
            so_number='3930',
            tools=TOOLS,
            line_items=(
                LineItemSnapshot(id='li-1', part_number='613278', qty_per_unit=2, total_qty_needed=6),
                LineItemSnapshot(id='li-2', part_number='613278', qty_per_unit=1, total_qty_needed=1, tool_ids=('t1',)),
                LineItemSnapshot(id='li-3', part_number='613279', qty_per_unit=8, total_qty_needed=24),
                LineItemSnapshot(id='li-4', part_number='200000', qty_per_unit=1, total_qty_needed=3),
            ),
        )

    def test_split_part_with_wrong_total_reports_both(self) -> None:
        drifts = {drift.part_number: drift for drift in detect_drift(self._order(), {'613278': 6, '613279': 24})}
        self.assertEqual(drifts['613278'].statuses, (DriftStatus.WRONG_TOTAL, DriftStatus.STILL_SPLIT))
        self.assertEqual(drifts['613278'].db_total, 7)
        self.assertEqual(drifts['613278'].difference, 1)
        self.assertEqual(drifts['613279'].statuses, (DriftStatus.OK,))
        self.assertTrue(drifts['613279'].is_ok)

    def test_split_part_with_matching_total_is_still_split(self) -> None:
        drifts = {drift.part_number: drift for drift in detect_drift(self._order(), {'613278': 7})}
        self.assertEqual(drifts['613278'].statuses, (DriftStatus.STILL_SPLIT,))

    def test_parts_without_expected_total_only_check_splits(self) -> None:
        drifts = {drift.part_number: drift for drift in detect_drift(self._order(), {})}
        self.assertIsNone(drifts['200000'].expected_total)
        self.assertTrue(drifts['200000'].is_ok)

    def test_expected_part_missing_from_database_has_wrong_total(self) -> None:
        drifts = {drift.part_number: drift for drift in detect_drift(self._order(), {'999999': 2})}
        self.assertEqual(drifts['999999'].db_total, 0)
        self.assertEqual(drifts['999999'].line_item_count, 0)
        self.assertEqual(drifts['999999'].statuses, (DriftStatus.WRONG_TOTAL,))

    def test_missing_order_reports_expected_parts_as_wrong_total(self) -> None:
        drifts = detect_drift(None, {'613278': 6})
        self.assertEqual([drift.statuses for drift in drifts], [(DriftStatus.WRONG_TOTAL,)])

    def test_results_are_sorted_by_part_number(self) -> None:
        parts = [drift.part_number for drift in detect_drift(self._order(), {'100000': 1})]
        self.assertEqual(parts, sorted(parts))

    def test_negative_expected_total_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            detect_drift(self._order(), {'613278': -1})


class SummarizeOrderTests(unittest.TestCase):
    def test_progress_counts_complete_line_items(self) -> None:
        order = OrderSnapshot(
            id='o-1',
            so_number='3930',
            line_items=(
                LineItemSnapshot(id='li-1', part_number='P-1', qty_per_unit=1, total_qty_needed=2),
                LineItemSnapshot(id='li-2', part_number='P-2', qty_per_unit=1, total_qty_needed=2),
            ),
            picks=(_pick('p1', 'li-1', 't1', 2), _pick('p2', 'li-2', 't1', 1)),
        )
        progress = summarize_order(order)
        self.assertEqual(progress.line_item_count, 2)
        self.assertEqual(progress.complete_line_item_count, 1)
        self.assertEqual(progress.total_needed, 4)
        self.assertEqual(progress.total_picked, 3)
        self.assertEqual(progress.progress_percent, 50)

    def test_empty_order_has_zero_progress(self) -> None:
        self.assertEqual(summarize_order(OrderSnapshot(id='o-1', so_number='1')).progress_percent, 0)


if __name__ == '__main__':
    unittest.main()
