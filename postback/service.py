import hashlib
import logging
from decimal import Decimal, InvalidOperation
from typing import Mapping, Optional
from uuid import uuid4

from pydantic import ValidationError

from rates import RatePolicyLookup, StoreRatePolicy

from .config import Settings, get_settings
from .models import (
    Click,
    Conversion,
    ConversionStatus,
    PostbackOutcome,
    PostbackRequest,
    PostbackResult,
    TrackClickRequest,
    Transaction,
    UserBalance,
    utcnow,
)
from .store import DocumentExistsError, DocumentStore, StoredDocument

logger = logging.getLogger(__name__)

REQUIRED_PARAMS = ("click_id", "order_id", "amount")
CLICK_ID_PLACEHOLDER = "{CLICK_ID}"


class PostbackServiceError(Exception):
    pass


class InvalidPostbackError(PostbackServiceError):
    pass


class ClickTrackingError(PostbackServiceError):
    pass


def parse_amount(value: str, max_amount: Optional[Decimal] = None) -> Decimal:
    try:
        amount = Decimal(value.strip())
    except InvalidOperation:
        raise InvalidPostbackError(f"Invalid amount: {value!r}")
    if not amount.is_finite() or amount <= 0:
        raise InvalidPostbackError(f"Invalid amount: {value!r}")
    if max_amount is not None and amount > max_amount:
        raise InvalidPostbackError(f"Amount exceeds maximum of {max_amount}: {value!r}")
    return amount


def dedupe_key(click_id: str, order_id: str) -> str:
    # Document ids may not contain "/", so raw tokens are hashed.
    return hashlib.sha256(f"{click_id}\x1f{order_id}".encode("utf-8")).hexdigest()


class PostbackService:
    def __init__(self, store: DocumentStore, settings: Optional[Settings] = None):
        self.store = store
        self.settings = settings or get_settings()
        self.rates = RatePolicyLookup(store, self.settings.stores_collection)

    def parse_postback(self, params: Mapping[str, str]) -> PostbackRequest:
        values = {name: (params.get(name) or "").strip() for name in REQUIRED_PARAMS}
        missing = [name for name, value in values.items() if not value]
        if missing:
            raise InvalidPostbackError(f"Missing required parameters: {', '.join(missing)}")

        merchant_name = (params.get("merchant_name") or "").strip() or None
        return PostbackRequest(
            click_id=values["click_id"],
            order_id=values["order_id"],
            amount=parse_amount(values["amount"], self.settings.max_sale_amount),
            merchant_name=merchant_name,
            raw=dict(params),
        )

    def process_postback(self, params: Mapping[str, str]) -> PostbackResult:
        postback = self.parse_postback(params)
        logger.info(
            f"[postback.received] click_id={postback.click_id} order_id={postback.order_id} "
            f"amount={postback.amount}"
        )

        click_doc = self.store.find_one(self.settings.clicks_collection, "clickId", postback.click_id)
        click = self._parse_click(click_doc) if click_doc else None
        if click_doc is None:
            logger.warning(f"[postback.unmatched] no click for click_id={postback.click_id}")

        conversion = self._build_conversion(postback, click, click_doc.id if click_doc else None)
        document_id = dedupe_key(postback.click_id, postback.order_id) if self.settings.dedupe_postbacks else None
        try:
            conversion_id = self.store.create(
                self.settings.conversions_collection, conversion.to_document(), document_id=document_id
            )
        except DocumentExistsError:
            logger.info(
                f"[postback.duplicate] click_id={postback.click_id} order_id={postback.order_id} ignored"
            )
            return PostbackResult(
                outcome=PostbackOutcome.DUPLICATE,
                conversion_id=document_id,
                message="Duplicate postback ignored.",
            )
        logger.info(f"[postback.conversion] id={conversion_id} status={conversion.status}")

        if click is None or not click.is_attributable:
            if click is not None:
                logger.warning(
                    f"[postback.unattributable] click_id={postback.click_id} "
                    f"user_id={click.user_id or '-'} store_id={click.store_id or '-'}"
                )
            return PostbackResult(
                outcome=PostbackOutcome.CONVERSION_ONLY,
                conversion_id=conversion_id,
                message="Postback received. Conversion logged, transaction skipped.",
            )

        transaction_id, cashback = self.materialize_transaction(postback, click, conversion_id)
        if cashback > 0:
            self.credit_pending_balance(click.user_id, cashback, transaction_id)

        return PostbackResult(
            outcome=PostbackOutcome.TRANSACTION_CREATED,
            conversion_id=conversion_id,
            transaction_id=transaction_id,
            cashback_amount=cashback,
            message="Postback received and transaction created.",
        )

    def materialize_transaction(self, postback: PostbackRequest, click: Click, conversion_id: str) -> tuple[str, Decimal]:
        policy = self.rates.get_or_default(click.store_id)
        cashback = policy.compute_cashback(postback.amount)
        store_name = click.store_name or policy.name or postback.merchant_name or self.settings.unknown_store_name

        transaction = Transaction(
            user_id=click.user_id,
            store_id=click.store_id,
            store_name=store_name,
            order_id=postback.order_id,
            click_id=postback.click_id,
            conversion_id=conversion_id,
            product_details=self._product_details(click),
            sale_amount=postback.amount,
            final_sale_amount=postback.amount,
            cashback_rate_applied=policy.rate_label,
            initial_cashback_amount=cashback,
            final_cashback_amount=cashback,
            currency=self.settings.currency,
            notes_to_user=f"Cashback for order {postback.order_id} at {store_name} is being tracked.",
        )
        transaction_id = self.store.create(self.settings.transactions_collection, transaction.to_document())
        logger.info(
            f"[postback.transaction] id={transaction_id} user_id={click.user_id} "
            f"store_id={click.store_id} cashback={cashback} rate={policy.rate_label}"
        )
        return transaction_id, cashback

    def credit_pending_balance(self, user_id: str, amount: Decimal, transaction_id: Optional[str] = None) -> None:
        try:
            self.store.increment_field(
                self.settings.users_collection, user_id, self.settings.pending_balance_field, amount
            )
        except Exception:
            # Conversion and transaction are already written; nothing is rolled back.
            logger.error(
                f"[postback.balance_failed] user_id={user_id} amount={amount} transaction_id={transaction_id or '-'}"
            )
            raise
        logger.info(f"[postback.balance] user_id={user_id} pending+={amount}")

    def track_click(self, request: TrackClickRequest) -> Click:
        policy: Optional[StoreRatePolicy] = self.rates.get(request.store_id)
        if policy is None:
            raise ClickTrackingError(f"Store {request.store_id} not found")

        click_id = request.click_id or str(uuid4())
        affiliate_link = None
        if policy.affiliate_link:
            affiliate_link = policy.affiliate_link.replace(CLICK_ID_PLACEHOLDER, click_id)

        click = Click(
            click_id=click_id,
            user_id=request.user_id,
            store_id=request.store_id,
            store_name=request.store_name or policy.name,
            coupon_id=request.coupon_id,
            product_id=request.product_id,
            product_name=request.product_name,
            affiliate_link=affiliate_link,
            original_link=request.original_link or policy.affiliate_link,
            user_agent=request.user_agent,
            timestamp=utcnow(),
        )
        self.store.create(self.settings.clicks_collection, click.to_document(), document_id=click_id)
        logger.info(f"[click.tracked] click_id={click_id} user_id={request.user_id} store_id={request.store_id}")
        return click

    def get_balance(self, user_id: str) -> UserBalance:
        document = self.store.get(self.settings.users_collection, user_id)
        pending = Decimal("0.00")
        if document is not None:
            pending = Decimal(str(document.data.get(self.settings.pending_balance_field) or 0))
        return UserBalance(user_id=user_id, currency=self.settings.currency, pending_cashback=pending)

    def _build_conversion(self, postback: PostbackRequest, click: Optional[Click], click_document_id: Optional[str]) -> Conversion:
        store_name = (click.store_name if click else None) or postback.merchant_name or self.settings.unknown_store_name
        status = ConversionStatus.RECEIVED if click and click.is_attributable else ConversionStatus.UNMATCHED_CLICK
        return Conversion(
            click_id=postback.click_id,
            original_click_id=click_document_id,
            user_id=click.user_id if click else None,
            store_id=click.store_id if click else None,
            store_name=store_name,
            order_id=postback.order_id,
            sale_amount=postback.amount,
            currency=self.settings.currency,
            status=status,
            postback_data=postback.raw,
        )

    def _parse_click(self, click_doc: StoredDocument) -> Optional[Click]:
        try:
            return Click(**click_doc.data)
        except ValidationError as e:
            # Treated as unattributable; the conversion still records the document id.
            logger.warning(
                f"[postback.malformed_click] id={click_doc.id} "
                f"fields={['.'.join(str(part) for part in err['loc']) for err in e.errors()]}"
            )
            return None

    def _product_details(self, click: Click) -> Optional[str]:
        if click.product_name:
            return click.product_name
        if click.coupon_id:
            return f"Coupon: {click.coupon_id}"
        return None
