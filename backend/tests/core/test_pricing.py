"""Pricing - verifies cent rounding and subtotals."""

from dataclasses import dataclass

from storefront.core.pricing import line_total, order_subtotal, round_money


@dataclass
class _Line:
    price: float
    quantity: int


def test_round_money_half_up():
    assert round_money(2.675) == 2.68
    assert round_money(0.125) == 0.13
    assert round_money(10) == 10.0


def test_line_total_avoids_float_drift():
    assert line_total(0.1, 3) == 0.3
    assert line_total(19.99, 2) == 39.98


def test_order_subtotal_sums_lines():
    lines = [_Line(10.0, 2), _Line(0.1, 3), _Line(5.55, 1)]
    assert order_subtotal(lines) == 25.85


def test_order_subtotal_of_nothing_is_zero():
    assert order_subtotal([]) == 0.0
