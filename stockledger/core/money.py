from decimal import Decimal, ROUND_HALF_UP

MONEY_QUANT = Decimal("0.01")
QTY_QUANT = Decimal("0.0001")
WAC_QUANT = Decimal("0.0001")
ZERO = Decimal("0")
ZERO_MONEY = Decimal("0.00")

Numeric = Decimal | int | float | str


def to_decimal(value: Numeric | None) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def to_money(value: Numeric | None) -> Decimal:
    return to_decimal(value).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def to_qty(value: Numeric | None) -> Decimal:
    return to_decimal(value).quantize(QTY_QUANT, rounding=ROUND_HALF_UP)


def to_wac(value: Numeric | None) -> Decimal:
    return to_decimal(value).quantize(WAC_QUANT, rounding=ROUND_HALF_UP)


def line_value(quantity: Numeric, unit_cost: Numeric) -> Decimal:
    return to_money(to_decimal(quantity) * to_decimal(unit_cost))
