from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field, ConfigDict


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversionStatus(str, Enum):
    RECEIVED = "received"
    UNMATCHED_CLICK = "unmatched_click"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    AWAITING_PAYOUT = "awaiting_payout"
    PAID = "paid"


class PostbackOutcome(str, Enum):
    TRANSACTION_CREATED = "transaction_created"
    CONVERSION_ONLY = "conversion_only"
    DUPLICATE = "duplicate"


class DocumentModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True)


class PostbackRequest(BaseModel):
    click_id: str
    order_id: str
    amount: Decimal
    merchant_name: Optional[str] = None
    raw: dict[str, Any] = Field(default_factory=dict)


class Click(DocumentModel):
    click_id: str = Field(..., alias="clickId")
    user_id: Optional[str] = Field(default=None, alias="userId")
    store_id: Optional[str] = Field(default=None, alias="storeId")
    store_name: Optional[str] = Field(default=None, alias="storeName")
    coupon_id: Optional[str] = Field(default=None, alias="couponId")
    product_id: Optional[str] = Field(default=None, alias="productId")
    product_name: Optional[str] = Field(default=None, alias="productName")
    affiliate_link: Optional[str] = Field(default=None, alias="affiliateLink")
    original_link: Optional[str] = Field(default=None, alias="originalLink")
    user_agent: Optional[str] = Field(default=None, alias="userAgent")
    timestamp: Optional[datetime] = None

    @property
    def is_attributable(self) -> bool:
        return bool(self.user_id) and bool(self.store_id)


class Conversion(DocumentModel):
    click_id: str = Field(..., alias="clickId")
    original_click_id: Optional[str] = Field(default=None, alias="originalClickFirebaseId")
    user_id: Optional[str] = Field(default=None, alias="userId")
    store_id: Optional[str] = Field(default=None, alias="storeId")
    store_name: str = Field(..., alias="storeName")
    order_id: str = Field(..., alias="orderId")
    sale_amount: Decimal = Field(..., alias="saleAmount")
    currency: str = "INR"
    status: ConversionStatus
    timestamp: datetime = Field(default_factory=utcnow)
    postback_data: dict[str, Any] = Field(default_factory=dict, alias="postbackData")


class Transaction(DocumentModel):
    user_id: str = Field(..., alias="userId")
    store_id: str = Field(..., alias="storeId")
    store_name: Optional[str] = Field(default=None, alias="storeName")
    order_id: str = Field(..., alias="orderId")
    click_id: str = Field(..., alias="clickId")
    conversion_id: str = Field(..., alias="conversionId")
    product_details: Optional[str] = Field(default=None, alias="productDetails")
    transaction_date: datetime = Field(default_factory=utcnow, alias="transactionDate")
    reported_date: datetime = Field(default_factory=utcnow, alias="reportedDate")
    sale_amount: Decimal = Field(..., alias="saleAmount")
    final_sale_amount: Decimal = Field(..., alias="finalSaleAmount")
    cashback_rate_applied: str = Field(default="N/A", alias="cashbackRateApplied")
    initial_cashback_amount: Decimal = Field(..., alias="initialCashbackAmount")
    final_cashback_amount: Decimal = Field(..., alias="finalCashbackAmount")
    currency: str = "INR"
    status: TransactionStatus = Field(default=TransactionStatus.PENDING, validate_default=True)
    confirmation_date: Optional[datetime] = Field(default=None, alias="confirmationDate")
    paid_date: Optional[datetime] = Field(default=None, alias="paidDate")
    payout_id: Optional[str] = Field(default=None, alias="payoutId")
    rejection_reason: Optional[str] = Field(default=None, alias="rejectionReason")
    admin_notes: Optional[str] = Field(default=None, alias="adminNotes")
    notes_to_user: Optional[str] = Field(default=None, alias="notesToUser")
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")
    updated_at: datetime = Field(default_factory=utcnow, alias="updatedAt")


class TrackClickRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    store_id: str = Field(..., min_length=1)
    click_id: Optional[str] = Field(default=None, description="Client-generated token; generated if omitted")
    store_name: Optional[str] = None
    coupon_id: Optional[str] = None
    product_id: Optional[str] = None
    product_name: Optional[str] = None
    original_link: Optional[str] = None
    user_agent: Optional[str] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "user_id": "u1",
            "store_id": "amazon",
            "coupon_id": "summer-sale",
        }
    })


class PostbackResult(BaseModel):
    outcome: PostbackOutcome
    conversion_id: Optional[str] = None
    transaction_id: Optional[str] = None
    cashback_amount: Optional[Decimal] = None
    message: str


class UserBalance(BaseModel):
    user_id: str
    currency: str
    pending_cashback: Decimal
