import logging
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional, Union

from ..models.product import PriceConversion

logger = logging.getLogger(__name__)

# Checked in order; the first marker found wins
CURRENCY_MARKERS = [
    ("USD", ["USD", "$"]),
    ("INR", ["INR", "₹", "RS"]),
    ("EUR", ["EUR", "€"]),
    ("GBP", ["GBP", "£"]),
    ("JPY", ["JPY", "¥"]),
]
DEFAULT_CURRENCY = "USD"

_NUMBER_RE = re.compile(r"\d[\d,]*(?:\.\d+)?|\.\d+")


def detect_currency(text: str) -> str:
    """Currency code from symbols or codes in free text, USD when nothing matches"""
    normalized = (text or "").upper().strip()

    for code, markers in CURRENCY_MARKERS:
        if any(marker in normalized for marker in markers):
            return code
    return DEFAULT_CURRENCY


def parse_price(price_text: Union[str, int, float, None]) -> Optional[Decimal]:
    """First number in a price string, or None"""
    if price_text is None:
        return None

    match = _NUMBER_RE.search(str(price_text))
    if not match:
        return None

    try:
        return Decimal(match.group().replace(",", ""))
    except InvalidOperation:
        return None


def format_price(amount: Union[int, float, Decimal], currency: str = "INR") -> str:
    """Display string for an amount, with Indian digit grouping for rupees"""
    if currency == "INR":
        return f"₹{_indian_grouping(int(Decimal(str(amount)).quantize(Decimal('1'), ROUND_HALF_UP)))}"
    if currency == "USD":
        return f"${Decimal(str(amount)):,.2f}"
    return f"{Decimal(str(amount)):,}"


def _indian_grouping(value: int) -> str:
    sign = "-" if value < 0 else ""
    digits = str(abs(value))
    if len(digits) <= 3:
        return sign + digits

    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return sign + ",".join(groups + [tail])


class CurrencyNormalizer:
    """Converts source-page prices into the catalog's display currency.

    Uses one flat fallback rate for every foreign currency; there is no
    live exchange-rate lookup.
    """

    def __init__(self, target_currency: str = "INR", fallback_rate: Union[float, str, Decimal] = 83.5):
        self.target_currency = target_currency
        self.fallback_rate = Decimal(str(fallback_rate))

    @classmethod
    def from_config(cls, config) -> "CurrencyNormalizer":
        return cls(
            target_currency=config.get("currency.target", "INR"),
            fallback_rate=config.get("currency.fallback_rate", 83.5),
        )

    def convert(self, price_text, currency_hint: Optional[str] = None) -> Optional[PriceConversion]:
        """
        Convert a price string into the target currency

        Args:
            price_text: Price as found on the page, e.g. "$19.99" or "Rs. 1,499"
            currency_hint: Currency code from structured data, if known

        Returns:
            PriceConversion, or None when no positive amount could be parsed
        """
        price = parse_price(price_text)
        if not price:
            return None

        currency = (currency_hint or "").strip().upper() or detect_currency(str(price_text))

        if currency == self.target_currency:
            rate = Decimal("1")
        else:
            rate = self.fallback_rate

        target_price = int((price * rate).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        logger.debug(f"Converted {price} {currency} to {target_price} {self.target_currency}")

        return PriceConversion(
            original_price=price,
            original_currency=currency,
            target_price=target_price,
            target_currency=self.target_currency,
            exchange_rate=rate,
            source="fallback",
        )
