from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from fulfillment.services.bom_csv_service import (
    audit_tool_against_bom,
    expected_totals_from_boms,
    parse_bom_csv,
)
from fulfillment.services.reconciliation_service import LineItemSnapshot, OrderSnapshot, PickSnapshot, ToolSnapshot

BOM_LINES = [
    'Level,Part Number,Type,Qty,Description',
    '0,230QR-10002,MFG,1,Top assembly',
    '1,613279,PUR,8,Screw',
    '1,613278,PUR,2,Washer',
    '2,613278,PUR,1,Washer (sub-assembly)',
    '2,ADH-1,PUR,0.036,Adhesive kg',
    '2,NOQTY,PUR,0,Reference only',
    '2,BAD,PUR,abc,Bad quantity',
    'x,SKIP,PUR,1,Bad level',
    '1,SHORT',
]


class ParseBomCsvTests(unittest.TestCase):
    def test_purchased_parts_are_summed_and_rounded_up(self) -> None:
        parts = parse_bom_csv(BOM_LINES)
        self.assertEqual(parts['613279'], 8)
        self.assertEqual(parts['613278'], 3)
        self.assertEqual(parts['ADH-1'], 1)
        self.assertEqual(parts['NOQTY'], 0)
        self.assertNotIn('230QR-10002', parts)
        self.assertNotIn('BAD', parts)
        self.assertNotIn('SKIP', parts)

    def test_reads_from_file_path(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / 'bom.csv'
            path.write_text('\n'.join(BOM_LINES), encoding='utf-8')
            self.assertEqual(parse_bom_csv(path), parse_bom_csv(BOM_LINES))

    def test_expected_totals_sum_across_tools(self) -> None:
        totals = expected_totals_from_boms([{'A': 2, 'B': 1}, {'A': 3}])
        self.assertEqual(totals, {'A': 5, 'B': 1})


class AuditToolAgainstBomTests(unittest.TestCase):
    def _order(self) -> OrderSnapshot:
        return OrderSnapshot(
            id='o-1',
            so_number='3930',
            tools=(ToolSnapshot(id='t1', tool_number='3930-1'), ToolSnapshot(id='t2', tool_number='3930-2')),
            line_items=(
                LineItemSnapshot(id='li-1', part_number='613279', qty_per_unit=8, total_qty_needed=16),
                LineItemSnapshot(id='li-2', part_number='613278', qty_per_unit=2, total_qty_needed=2, tool_ids=('t2',)),
                LineItemSnapshot(id='li-3', part_number='EXTRA', qty_per_unit=1, total_qty_needed=2),
                LineItemSnapshot(id='li-4', part_number='WRONG', qty_per_unit=5, total_qty_needed=10),
            ),
            picks=(PickSnapshot(id='p1', line_item_id='li-1', tool_id='t1', qty_picked=10),),
        )

    def test_reports_each_kind_of_issue(self) -> None:
        bom = {'613279': 8, '613278': 3, 'WRONG': 4, 'MISSING': 1}
        audit = audit_tool_against_bom(self._order(), '3930-1', bom)
        self.assertTrue(audit.has_issues)
        self.assertEqual(audit.parts_checked, 4)
        self.assertEqual(audit.missing_from_db, (('MISSING', 1),))
        self.assertEqual(audit.extra_in_db, (('EXTRA', 1),))
        issues = {mismatch.part_number: mismatch for mismatch in audit.mismatches}
        self.assertIsNone(issues['613278'].db_qty)
        self.assertEqual(issues['WRONG'].db_qty, 5)
        self.assertEqual(issues['WRONG'].issue, 'qty mismatch')
        self.assertEqual(len(audit.over_picked), 1)
        self.assertEqual(audit.over_picked[0].over_by, 2)

    def test_clean_tool_has_no_issues(self) -> None:
        bom = {'613279': 8, '613278': 2, 'EXTRA': 1, 'WRONG': 5}
        audit = audit_tool_against_bom(self._order(), '3930-2', bom)
        self.assertFalse(audit.has_issues)

    def test_unknown_tool_number_is_flagged(self) -> None:
        audit = audit_tool_against_bom(self._order(), '3930-9', {'613279': 8})
        self.assertTrue(audit.tool_missing)
        self.assertTrue(audit.has_issues)


if __name__ == '__main__':
    unittest.main()
