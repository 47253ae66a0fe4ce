from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any

from app.services.number_utils import ZERO, parse_number
from app.services.shared_material_service import SharedMaterial

ITEM_FIELD_RE = re.compile(r'^items-(\d+)-(name|quantity|unitCost|isShared|prevName|prevQuantity|prevUnitCost|wasShared)$')
LAST_ITEM_MESSAGE = '至少需要保留一個項目'


@dataclass(frozen=True)
class BomItem:
    name: str = ''
    quantity: str = ''
    unit_cost: str = ''
    is_shared: bool = False

    @classmethod
    def from_document(cls, data: Mapping[str, Any]) -> 'BomItem':
        return cls(
            name=str(data.get('name') or ''),
            quantity=_as_text(data.get('quantity')),
            unit_cost=_as_text(data.get('unitCost')),
            is_shared=bool(data.get('isShared')),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            'name': self.name,
            'quantity': self.quantity,
            'unitCost': self.unit_cost,
            'isShared': self.is_shared,
        }

    @property
    def line_total(self) -> Decimal:
        return parse_number(self.quantity) * parse_number(self.unit_cost)


def _as_text(value: Any) -> str:
    if value is None:
        return ''
    return str(value)


def compute_total_cost(items: Sequence[BomItem]) -> Decimal:
    return sum((item.line_total for item in items), ZERO)


def edit_item(
    items: Sequence[BomItem],
    index: int,
    field: str,
    value: Any,
    materials: Mapping[str, SharedMaterial],
) -> tuple[BomItem, ...]:
    if index < 0 or index >= len(items):
        raise IndexError(f'No item at position {index}')

    item = items[index]
    if field == 'isShared':
        # A shared row must be picked from the catalog again.
        updated = replace(item, is_shared=bool(value), name='', unit_cost='')
    elif field == 'name':
        updated = replace(item, name=str(value))
        if item.is_shared:
            material = materials.get(str(value))
            if material is not None:
                updated = replace(updated, unit_cost=material.unit_cost_display)
    elif field == 'quantity':
        updated = replace(item, quantity=str(value))
    elif field == 'unitCost':
        if item.is_shared:
            return tuple(items)
        updated = replace(item, unit_cost=str(value))
    else:
        raise ValueError(f'Unknown item field: {field}')

    return tuple(updated if position == index else existing for position, existing in enumerate(items))


def add_item(items: Sequence[BomItem]) -> tuple[BomItem, ...]:
    return (*items, BomItem())


def delete_item(items: Sequence[BomItem], index: int) -> tuple[BomItem, ...]:
    if len(items) <= 1:
        raise ValueError(LAST_ITEM_MESSAGE)
    if index < 0 or index >= len(items):
        raise IndexError(f'No item at position {index}')
    return tuple(item for position, item in enumerate(items) if position != index)


@dataclass(frozen=True)
class ItemFormRow:
    previous: BomItem
    submitted: dict[str, Any]


def parse_item_rows(form: Mapping[str, Any]) -> list[ItemFormRow]:
    """
    Read the item table back out of a submitted form.

    Every row carries hidden ``prev*``/``wasShared`` inputs holding the values
    it was rendered with, so edits can be replayed one field at a time.
    """
    fields_by_index: dict[int, dict[str, Any]] = {}
    for key in form.keys():
        match = ITEM_FIELD_RE.match(key)
        if not match:
            continue
        fields_by_index.setdefault(int(match.group(1)), {})[match.group(2)] = form.get(key)

    rows: list[ItemFormRow] = []
    for index in sorted(fields_by_index):
        fields = fields_by_index[index]
        previous = BomItem(
            name=str(fields.get('prevName') or ''),
            quantity=str(fields.get('prevQuantity') or ''),
            unit_cost=str(fields.get('prevUnitCost') or ''),
            is_shared=str(fields.get('wasShared') or '') == '1',
        )
        submitted = {
            'isShared': 'isShared' in fields and str(fields['isShared']) not in {'', '0', 'false'},
            'name': str(fields.get('name') if fields.get('name') is not None else previous.name),
            'quantity': str(fields.get('quantity') if fields.get('quantity') is not None else previous.quantity),
            'unitCost': str(fields.get('unitCost') if fields.get('unitCost') is not None else previous.unit_cost),
        }
        rows.append(ItemFormRow(previous=previous, submitted=submitted))
    return rows


def apply_form_edits(rows: Sequence[ItemFormRow], materials: Mapping[str, SharedMaterial]) -> tuple[BomItem, ...]:
    items = tuple(row.previous for row in rows)
    for index, row in enumerate(rows):
        if row.submitted['isShared'] != row.previous.is_shared:
            items = edit_item(items, index, 'isShared', row.submitted['isShared'], materials)
            continue
        current = items[index]
        if row.submitted['name'] != current.name:
            items = edit_item(items, index, 'name', row.submitted['name'], materials)
        if row.submitted['quantity'] != items[index].quantity:
            items = edit_item(items, index, 'quantity', row.submitted['quantity'], materials)
        if row.submitted['unitCost'] != items[index].unit_cost:
            items = edit_item(items, index, 'unitCost', row.submitted['unitCost'], materials)
    return items
