from __future__ import annotations

import unittest
from decimal import Decimal

import portal_support  # noqa: F401

from app.services.bom_editor_service import (
    LAST_ITEM_MESSAGE,
    BomItem,
    add_item,
    apply_form_edits,
    compute_total_cost,
    delete_item,
    edit_item,
    parse_item_rows,
)
from app.services.shared_material_service import SharedMaterial, derive_unit_cost


def _material(name: str, purchase: str, unit: str) -> SharedMaterial:
    return SharedMaterial(
        id=f'mat-{name}',
        name=name,
        purchase_unit_cost=purchase,
        product_unit=unit,
        unit_cost=derive_unit_cost(purchase, unit),
    )


class BomEditorServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.materials = {'醬油': _material('醬油', '100', '4')}

    def test_total_cost_sums_quantity_times_unit_cost(self) -> None:
        items = (
            BomItem(name='a', quantity='2', unit_cost='25'),
            BomItem(name='b', quantity='1.5', unit_cost='10'),
            BomItem(name='c', quantity='', unit_cost='99'),
            BomItem(name='d', quantity='3abc', unit_cost='x'),
        )

        self.assertEqual(compute_total_cost(items), Decimal('65.0'))

    def test_total_cost_follows_current_rows(self) -> None:
        items = (BomItem(name='a', quantity='1', unit_cost='5'),)
        items = edit_item(items, 0, 'quantity', '4', self.materials)

        self.assertEqual(compute_total_cost(items), Decimal('20'))

    def test_toggling_shared_clears_name_and_cost(self) -> None:
        for is_shared in (True, False):
            items = (BomItem(name='豬肉', quantity='2', unit_cost='180', is_shared=not is_shared),)

            updated = edit_item(items, 0, 'isShared', is_shared, self.materials)

            self.assertEqual(updated[0].name, '')
            self.assertEqual(updated[0].unit_cost, '')
            self.assertEqual(updated[0].quantity, '2')
            self.assertEqual(updated[0].is_shared, is_shared)

    def test_selecting_shared_material_snapshots_unit_cost(self) -> None:
        items = (BomItem(is_shared=True, quantity='2'),)

        updated = edit_item(items, 0, 'name', '醬油', self.materials)
        self.materials['醬油'] = _material('醬油', '200', '4')

        self.assertEqual(updated[0].unit_cost, '25.00')
        self.assertEqual(compute_total_cost(updated), Decimal('50.00'))

    def test_unit_cost_of_shared_row_is_not_editable(self) -> None:
        items = (BomItem(name='醬油', quantity='1', unit_cost='25.00', is_shared=True),)

        self.assertEqual(edit_item(items, 0, 'unitCost', '1', self.materials), items)

    def test_edit_returns_new_rows(self) -> None:
        items = (BomItem(name='a'), BomItem(name='b'))

        updated = edit_item(items, 1, 'name', 'c', self.materials)

        self.assertEqual(items[1].name, 'b')
        self.assertEqual([item.name for item in updated], ['a', 'c'])

    def test_add_and_delete_rows(self) -> None:
        items = add_item((BomItem(name='a'),))
        self.assertEqual(items[-1], BomItem())

        self.assertEqual(delete_item(items, 0), (BomItem(),))

    def test_last_row_cannot_be_deleted(self) -> None:
        with self.assertRaises(ValueError) as ctx:
            delete_item((BomItem(name='a'),), 0)

        self.assertEqual(str(ctx.exception), LAST_ITEM_MESSAGE)

    def test_form_edits_replay_toggle_before_other_fields(self) -> None:
        form = {
            'items-0-prevName': '豬肉',
            'items-0-prevQuantity': '1',
            'items-0-prevUnitCost': '180',
            'items-0-wasShared': '0',
            'items-0-isShared': '1',
            'items-0-name': '豬肉',
            'items-0-quantity': '1',
            'items-0-unitCost': '180',
            'items-1-prevName': '',
            'items-1-prevQuantity': '',
            'items-1-prevUnitCost': '',
            'items-1-wasShared': '1',
            'items-1-isShared': '1',
            'items-1-name': '醬油',
            'items-1-quantity': '3',
            'items-1-unitCost': '',
        }

        items = apply_form_edits(parse_item_rows(form), self.materials)

        self.assertEqual(items[0], BomItem(name='', quantity='1', unit_cost='', is_shared=True))
        self.assertEqual(items[1], BomItem(name='醬油', quantity='3', unit_cost='25.00', is_shared=True))


if __name__ == '__main__':
    unittest.main()
