from __future__ import annotations

import unittest
from decimal import Decimal

import portal_support  # noqa: F401

from app.services.bom_editor_service import BomItem
from app.services.bom_service import BomTable
from app.services.number_utils import format_money, parse_optional_number, quantize_money, to_storage_number


class NumberUtilsTests(unittest.TestCase):
    def test_leading_number_is_parsed(self) -> None:
        self.assertEqual(parse_optional_number('12.5kg'), Decimal('12.5'))
        self.assertEqual(parse_optional_number(3), Decimal('3'))
        self.assertIsNone(parse_optional_number('kg'))
        self.assertIsNone(parse_optional_number(True))

    def test_values_beyond_double_range_are_missing(self) -> None:
        self.assertIsNone(parse_optional_number('1e400'))
        self.assertIsNone(parse_optional_number(Decimal('NaN')))
        self.assertEqual(parse_optional_number('1e300'), Decimal('1e300'))

    def test_money_rounds_half_up(self) -> None:
        self.assertEqual(format_money(Decimal('2.345')), '2.35')
        self.assertEqual(format_money(None), '')

    def test_large_values_keep_their_cents(self) -> None:
        self.assertEqual(quantize_money(Decimal('1e30')), Decimal('1000000000000000000000000000000.00'))
        self.assertEqual(format_money(Decimal('123456789012345678901234567.891')), '123456789012345678901234567.89')
        self.assertEqual(to_storage_number(Decimal('1e30')), 1e30)

    def test_huge_bom_total_still_renders(self) -> None:
        table = BomTable(id='t1', table_name='大單', items=(BomItem(quantity='1e30', unit_cost='1'),))

        self.assertEqual(table.total_cost_display, '1' + '0' * 30 + '.00')


if __name__ == '__main__':
    unittest.main()
