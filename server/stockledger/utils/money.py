from decimal import Decimal, ROUND_HALF_UP


def to_decimal(value: Decimal | float | int | str | None) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize_money(value: Decimal | float | int | str | None) -> Decimal | None:
    if value is None:
        return None
    return to_decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
