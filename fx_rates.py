from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP

from config import get_settings

# Static desk rates; quote units per 1 base unit.
STATIC_RATES: dict[tuple[str, str], Decimal] = {
    ("NGN", "USD"): Decimal("0.0012"),
    ("USD", "NGN"): Decimal("833"),
}
MIN_EXCHANGE_AMOUNT = Decimal("100")
CENT = Decimal("0.01")


@dataclass(frozen=True)
class FxQuote:
    provider: str
    base: str
    quote: str
    rate: Decimal  # quote per 1 base
    fetched_at: datetime


@dataclass(frozen=True)
class Conversion:
    amount: Decimal
    converted: Decimal
    fee: Decimal
    receive: Decimal
    quote: FxQuote


class FxRateService:
    def __init__(self) -> None:
        self.settings = get_settings()

    def quote(self, base: str, quote: str) -> FxQuote:
        base = base.upper()
        quote = quote.upper()
        if base == quote:
            raise ValueError("Currencies must differ")
        rate = STATIC_RATES.get((base, quote))
        if rate is None:
            raise ValueError(f"Unsupported currency pair: {base}/{quote}")
        return FxQuote(
            provider="static",
            base=base,
            quote=quote,
            rate=rate,
            fetched_at=datetime.now(timezone.utc),
        )

    def convert(self, amount: float, base: str, quote: str) -> Conversion:
        value = Decimal(str(amount))
        if value < MIN_EXCHANGE_AMOUNT:
            raise ValueError(f"Minimum exchange amount is {MIN_EXCHANGE_AMOUNT}")
        fx = self.quote(base, quote)
        converted = (value * fx.rate).quantize(CENT, rounding=ROUND_HALF_UP)
        fee_rate = Decimal(self.settings.fx_fee_bps) / Decimal("10000")
        fee = (converted * fee_rate).quantize(CENT, rounding=ROUND_HALF_UP)
        return Conversion(
            amount=value,
            converted=converted,
            fee=fee,
            receive=converted - fee,
            quote=fx,
        )
