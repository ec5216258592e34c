from dataclasses import dataclass
from decimal import Decimal

from stockledger.core.config import settings
from stockledger.core.money import to_decimal, to_money, to_wac


@dataclass(frozen=True)
class PriceVariance:
    period_price: Decimal
    actual_price: Decimal
    quantity: Decimal
    variance: Decimal
    variance_amount: Decimal
    variance_percent: Decimal | None
    exceeds_threshold: bool

    @property
    def direction(self) -> str:
        return "increase" if self.variance > 0 else "decrease"


def detect_price_variance(
    *,
    actual_price: Decimal,
    period_price: Decimal,
    quantity: Decimal,
    threshold: Decimal | None = None,
) -> PriceVariance:
    actual_price = to_decimal(actual_price)
    period_price = to_decimal(period_price)
    quantity = to_decimal(quantity)
    limit = settings.price_variance_threshold if threshold is None else to_decimal(threshold)

    variance = to_wac(actual_price - period_price)
    percent = to_money(variance / period_price * 100) if period_price > 0 else None
    return PriceVariance(
        period_price=period_price,
        actual_price=actual_price,
        quantity=quantity,
        variance=variance,
        variance_amount=to_money(variance * quantity),
        variance_percent=percent,
        exceeds_threshold=abs(variance) > limit,
    )


def describe_variance(result: PriceVariance, *, item_code: str, item_name: str) -> str:
    percent = f"{result.variance_percent}%" if result.variance_percent is not None else "n/a"
    return "\n".join(
        [
            "Automatic NCR for price variance detected on delivery.",
            "",
            f"Item: {item_name} ({item_code})",
            f"Quantity: {result.quantity}",
            f"Expected price (period): {to_wac(result.period_price)}",
            f"Actual price (delivery): {to_wac(result.actual_price)}",
            f"Variance: {result.variance} ({percent} {result.direction})",
            f"Total variance amount: {result.variance_amount}",
        ]
    )
