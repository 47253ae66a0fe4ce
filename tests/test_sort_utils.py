from __future__ import annotations

import unittest
from decimal import Decimal

from app.services.sort_utils import filter_records, paginate, sort_records


class SortUtilsTests(unittest.TestCase):
    def test_numeric_text_sorts_by_value_and_blanks_last(self) -> None:
        values = ['10', '9', '', 'abc', Decimal('2.5'), None]

        ordered = sort_records(values, lambda value: value)

        self.assertEqual(ordered, [Decimal('2.5'), '9', '10', 'abc', '', None])

    def test_nan_like_names_sort_as_text(self) -> None:
        values = ['snan', 'b', 'NaN', '3', 'infinity']

        ordered = sort_records(values, lambda value: value)

        self.assertEqual(ordered, ['3', 'b', 'infinity', 'NaN', 'snan'])


    def test_filter_is_case_insensitive(self) -> None:
        records = [{'name': 'Soy Sauce'}, {'name': 'Sugar'}]

        self.assertEqual(filter_records(records, 'SAUCE', lambda record: (record['name'],)), [records[0]])

    def test_paginate_clamps_page_number(self) -> None:
        page = paginate(list(range(25)), page=9, size=10)

        self.assertEqual(page.number, 3)
        self.assertEqual(page.items, [20, 21, 22, 23, 24])
        self.assertEqual(page.total_pages, 3)
        self.assertTrue(page.has_previous)
        self.assertFalse(page.has_next)

    def test_empty_collection_has_one_page(self) -> None:
        page = paginate([], page=1, size=10)

        self.assertEqual((page.number, page.total_pages, page.items), (1, 1, []))


if __name__ == '__main__':
    unittest.main()
