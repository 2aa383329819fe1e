"""Currency -- supported ISO 4217 codes, minor units and display symbols."""

from dataclasses import dataclass
from decimal import Decimal
from typing import ClassVar


@dataclass(frozen=True)
class CurrencyInfo:
    """Information about a single supported currency."""

    code: str
    decimal_places: int
    name: str
    symbol: str

    @property
    def quantum(self) -> Decimal:
        """Smallest representable amount, for Decimal.quantize()."""
        if self.decimal_places == 0:
            return Decimal("1")
        return Decimal("0." + "0" * (self.decimal_places - 1) + "1")


class CurrencyRegistry:
    """Registry of the currencies a proposal can be priced in."""

    _CURRENCIES: ClassVar[dict[str, CurrencyInfo]] = {
        "USD": CurrencyInfo("USD", 2, "US Dollar", "$"),
        "EUR": CurrencyInfo("EUR", 2, "Euro", "€"),
        "GBP": CurrencyInfo("GBP", 2, "British Pound", "£"),
        "CAD": CurrencyInfo("CAD", 2, "Canadian Dollar", "C$"),
        "AUD": CurrencyInfo("AUD", 2, "Australian Dollar", "A$"),
        "CHF": CurrencyInfo("CHF", 2, "Swiss Franc", "CHF"),
        "JPY": CurrencyInfo("JPY", 0, "Japanese Yen", "¥"),
    }

    @classmethod
    def is_valid(cls, code: str) -> bool:
        return code in cls._CURRENCIES

    @classmethod
    def get_info(cls, code: str) -> CurrencyInfo | None:
        return cls._CURRENCIES.get(code)

    @classmethod
    def get_decimal_places(cls, code: str) -> int:
        """Minor units for the code; unknown codes default to 2."""
        info = cls._CURRENCIES.get(code)
        return info.decimal_places if info else 2

    @classmethod
    def get_symbol(cls, code: str) -> str:
        """Display symbol, falling back to the code itself."""
        info = cls._CURRENCIES.get(code)
        return info.symbol if info else code

    @classmethod
    def all_codes(cls) -> frozenset[str]:
        return frozenset(cls._CURRENCIES)
