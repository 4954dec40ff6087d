import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")
DEFAULT_RATE_LABEL = "N/A"
# Fixed amounts and percentages above this are treated as misconfigured.
MAX_RATE_VALUE = Decimal("1000000")


class CashbackType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"

    @classmethod
    def parse(cls, value: Any) -> "CashbackType":
        try:
            return cls(value)
        except ValueError:
            return cls.PERCENTAGE


def round_currency(amount: Decimal) -> Decimal:
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def parse_rate_value(value: Any) -> Optional[Decimal]:
    """Coerce a stored rate value into a positive finite Decimal, or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        value = repr(value)
    if not isinstance(value, (int, str, Decimal)):
        return None
    try:
        rate = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    if not rate.is_finite() or rate <= 0 or rate > MAX_RATE_VALUE:
        return None
    return rate


@dataclass
class StoreRatePolicy:
    store_id: str
    cashback_type: CashbackType = CashbackType.PERCENTAGE
    rate_value: Optional[Decimal] = None
    rate_label: str = DEFAULT_RATE_LABEL
    name: Optional[str] = None
    affiliate_link: Optional[str] = None

    def compute_cashback(self, sale_amount: Decimal) -> Decimal:
        if self.rate_value is None:
            return ZERO
        if self.cashback_type == CashbackType.FIXED:
            return round_currency(self.rate_value)
        return round_currency(sale_amount * self.rate_value / Decimal(100))

    @classmethod
    def from_dict(cls, store_id: str, data: dict) -> "StoreRatePolicy":
        rate_value = parse_rate_value(data.get("cashbackRateValue"))
        label = data.get("cashbackRate")
        if not label:
            raw = data.get("cashbackRateValue")
            label = str(raw) if raw is not None else DEFAULT_RATE_LABEL
        return cls(
            store_id=store_id,
            cashback_type=CashbackType.parse(data.get("cashbackType")),
            rate_value=rate_value, rate_label=str(label),
            name=data.get("name"), affiliate_link=data.get("affiliateLink"),
        )

    @classmethod
    def missing(cls, store_id: str) -> "StoreRatePolicy":
        return cls(store_id=store_id)


class RatePolicyLookup:
    def __init__(self, store, collection: str = "stores"):
        self.store = store
        self.collection = collection

    def get(self, store_id: str) -> Optional[StoreRatePolicy]:
        document = self.store.get(self.collection, store_id)
        if document is None:
            return None
        return StoreRatePolicy.from_dict(document.id, document.data)

    def get_or_default(self, store_id: str) -> StoreRatePolicy:
        policy = self.get(store_id)
        if policy is None:
            logger.warning(f"[rates.missing_store] store_id={store_id} cashback=0")
            return StoreRatePolicy.missing(store_id)
        return policy
