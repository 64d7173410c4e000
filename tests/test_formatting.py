import pytest

from formatting import (
    DEFAULT_PAYMENT_METHOD_COLORS,
    format_amount,
    format_month_label,
    instance_display_name,
    payment_method_color,
)
from schemas import PaymentMethod


def test_format_amount_uses_dot_grouping():
    assert format_amount(1234567) == "$1.234.567"
    assert format_amount(0) == "$0"
    assert format_amount(-500) == "-$500"


def test_month_labels_and_display_names():
    assert format_month_label("2025-08") == "August 2025"
    assert (
        instance_display_name("Phone", "2025-08", 3)
        == "Installment 3 of Phone - August 2025"
    )
    assert instance_display_name("Electricity", "2025-01") == "Electricity - January 2025"


def test_payment_method_color_lookup():
    assert payment_method_color("Visa") == "text-blue-600"
    assert payment_method_color("Tarjeta Naranja X") == "text-orange-500"
    assert payment_method_color("Cuenta DNI") == "text-green-600"
    assert payment_method_color("Something else") is None
    assert payment_method_color(None) is None


def test_configured_color_wins_over_palette():
    methods = [
        PaymentMethod(id="pm-1", name="Visa", color="text-pink-500"),
        PaymentMethod(id="pm-2", name="Mercado Pago"),
    ]
    assert payment_method_color("pm-1", methods) == "text-pink-500"
    assert payment_method_color("pm-2", methods) == "text-blue-500"
    assert payment_method_color("Visa", methods, palette={}) == "text-pink-500"


def test_default_palette_is_read_only():
    with pytest.raises(TypeError):
        DEFAULT_PAYMENT_METHOD_COLORS["visa"] = "text-black"
