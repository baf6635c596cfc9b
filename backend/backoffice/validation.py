from __future__ import annotations

from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Mapping

from backoffice.errors import ValidationError
from backoffice.time_utils import parse_iso_date


# Guaraní amounts are whole numbers; this cap keeps totals well inside a
# 64-bit column and rejects obvious typos.
MAX_AMOUNT = 999_999_999_999

VAT_RATES = (10, 5, 0)

TWO_PLACES = Decimal("0.01")

DECISION_APPROVED = "APPROVED"
DECISION_REJECTED = "REJECTED"

_DECISION_ALIASES = {
    "APPROVED": DECISION_APPROVED,
    "APPROVE": DECISION_APPROVED,
    "APROBADO": DECISION_APPROVED,
    "REJECTED": DECISION_REJECTED,
    "REJECT": DECISION_REJECTED,
    "RECHAZADO": DECISION_REJECTED,
}


def require_text(value: Any, field: str) -> str:
    """Return a stripped, non-empty string or raise ValidationError."""
    if value is None:
        raise ValidationError(f"{field} is required", field=field)
    text = str(value).strip()
    if not text:
        raise ValidationError(f"{field} is required", field=field)
    return text


def require_mapping(value: Any, field: str) -> Mapping:
    if not isinstance(value, Mapping):
        raise ValidationError(f"{field} must be an object", field=field)
    return value


def optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def require_int(value: Any, field: str, *, minimum: int | None = None) -> int:
    """
    Strict integer coercion.

    Rejects bools, floats with a fractional part, decimals in strings and
    scientific notation.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be an integer", field=field)
    if isinstance(value, int):
        number = value
    elif isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"{field} must be an integer, not a decimal", field=field)
        number = int(value)
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{field} must be a plain integer", field=field)
        try:
            number = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer", field=field)
    else:
        raise ValidationError(f"{field} must be an integer", field=field)

    if minimum is not None and number < minimum:
        raise ValidationError(f"{field} must be at least {minimum}", field=field)
    if number > MAX_AMOUNT:
        raise ValidationError(f"{field} is too large", field=field)
    return number


def require_positive_int(value: Any, field: str) -> int:
    return require_int(value, field, minimum=1)


def require_non_negative_int(value: Any, field: str) -> int:
    return require_int(value, field, minimum=0)


def require_positive_decimal(value: Any, field: str) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number", field=field)
    try:
        number = Decimal(str(value))
    except ArithmeticError:
        raise ValidationError(f"{field} must be a number", field=field)
    if not number.is_finite() or number <= 0:
        raise ValidationError(f"{field} must be greater than zero", field=field)
    return number


def require_date(value: Any, field: str) -> date:
    try:
        parsed = parse_iso_date(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an ISO-8601 date", field=field)
    if parsed is None:
        raise ValidationError(f"{field} is required", field=field)
    return parsed


def require_vat_rate(value: Any, field: str = "vat_rate") -> int:
    rate = require_int(value, field)
    if rate not in VAT_RATES:
        raise ValidationError(f"{field} must be one of 10, 5 or 0", field=field)
    return rate


def normalize_decision(value: Any) -> str:
    key = str(value or "").strip().upper()
    try:
        return _DECISION_ALIASES[key]
    except KeyError:
        raise ValidationError("decision must be APPROVED or REJECTED", field="decision")


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def vat_from_gross(gross: int, rate: int) -> Decimal:
    """
    VAT contained in a VAT-inclusive amount.

    10% -> gross / 11, 5% -> gross / 21, exempt -> 0.
    """
    if rate == 10:
        return quantize_money(Decimal(gross) / Decimal(11))
    if rate == 5:
        return quantize_money(Decimal(gross) / Decimal(21))
    return Decimal("0.00")
