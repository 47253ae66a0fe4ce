from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from typing import Any

_LEADING_NUMBER = re.compile(r'^\s*([-+]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?)')

ZERO = Decimal('0')
CENTS = Decimal('0.01')
HUNDRED_PERCENT = Decimal('100')
# Largest decimal exponent a stored double can carry.
MAX_EXPONENT = 308


def _usable(value: Decimal) -> Decimal | None:
    if not value.is_finite() or value.adjusted() > MAX_EXPONENT:
        return None
    return value


def parse_optional_number(value: Any) -> Decimal | None:
    """Parse the leading number of a form value; ``None`` when there is none."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return _usable(value)
    if isinstance(value, (int, float)):
        try:
            parsed = Decimal(str(value))
        except InvalidOperation:
            return None
        return _usable(parsed)
    match = _LEADING_NUMBER.match(str(value))
    if not match:
        return None
    try:
        return _usable(Decimal(match.group(1)))
    except InvalidOperation:
        return None


def parse_number(value: Any) -> Decimal:
    parsed = parse_optional_number(value)
    return ZERO if parsed is None else parsed


def quantize_money(value: Decimal) -> Decimal:
    with localcontext() as ctx:
        # Room for every integer digit plus the cents.
        ctx.prec = max(ctx.prec, value.adjusted() + 3)
        return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def format_money(value: Decimal | None) -> str:
    if value is None:
        return ''
    return f'{quantize_money(value):.2f}'


def to_storage_number(value: Decimal) -> float:
    # Firestore has no decimal type.
    return float(quantize_money(value))


def format_plain(value: Any) -> str:
    """Render a stored number without float noise, e.g. ``100.0`` as ``100``."""
    parsed = parse_optional_number(value)
    if parsed is None:
        return '' if value is None else str(value)
    return f'{parsed.normalize():f}'
