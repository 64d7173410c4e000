from types import MappingProxyType
from typing import Mapping, Optional, Sequence

from periods import parse_month_key
from schemas import PaymentMethod


MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)

DEFAULT_PAYMENT_METHOD_COLORS: Mapping[str, str] = MappingProxyType(
    {
        # cards
        "naranja x": "text-orange-500",
        "naranja": "text-orange-500",
        "visa": "text-blue-600",
        "mastercard": "text-red-500",
        "american express": "text-blue-500",
        "amex": "text-blue-500",
        # banks
        "santander": "text-red-600",
        "galicia": "text-yellow-600",
        "bbva": "text-blue-800",
        "macro": "text-blue-700",
        "icbc": "text-red-700",
        "nación": "text-blue-700",
        "provincia": "text-green-700",
        # wallets
        "mercado pago": "text-blue-500",
        "uala": "text-purple-600",
        "belo": "text-violet-600",
        "modo": "text-blue-500",
        "cuenta dni": "text-green-600",
        "paypal": "text-blue-600",
        # cash and transfers
        "efectivo": "text-green-500",
        "transferencia": "text-teal-600",
        "débito": "text-sky-600",
        "debito": "text-sky-600",
    }
)


def format_amount(amount: int) -> str:
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,}".replace(",", ".")


def format_month_label(month: str) -> str:
    year, month_number = parse_month_key(month)
    return f"{MONTH_NAMES[month_number - 1]} {year}"


def instance_display_name(
    description: str, month: str, sequence_number: Optional[int] = None
) -> str:
    label = format_month_label(month)
    if sequence_number:
        return f"Installment {sequence_number} of {description} - {label}"
    return f"{description} - {label}"


def payment_method_color(
    name_or_id: Optional[str],
    payment_methods: Sequence[PaymentMethod] = (),
    palette: Mapping[str, str] = DEFAULT_PAYMENT_METHOD_COLORS,
) -> Optional[str]:
    """Color class for a payment method.

    An explicit color configured on the matching payment method wins; otherwise
    the palette is searched by exact and then partial name match.
    """
    if not name_or_id:
        return None

    name = name_or_id
    for method in payment_methods:
        if method.id == name_or_id or method.name == name_or_id:
            if method.color:
                return method.color
            name = method.name
            break

    normalized = name.strip().lower()
    if normalized in palette:
        return palette[normalized]
    for key, color in palette.items():
        if key in normalized:
            return color
    return None
