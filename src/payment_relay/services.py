"""Payment service layer tying gateway calls to the order store."""

import logging
from dataclasses import dataclass
from typing import Optional, Dict, Any

from sqlalchemy.exc import SQLAlchemyError

from .config import RelayConfig
from .database import (
    DatabaseManager,
    PaymentRecordRepository,
    StatusHistoryRepository,
    HistoryAction,
    PaymentStatus,
)
from .errors import SignatureInvalid, StorageError, ValidationError
from .gateway import GatewayClient
from .schemas import (
    AuthorizeBody,
    CancelBody,
    CancelRequest,
    CreatePaymentRequest,
    DetailBody,
    PaymentDetailQuery,
    PaymentSummary,
    RefundBody,
    RefundRequest,
    compute_pricing,
    new_identifier,
)
from .webhooks import WebhookPayload, WebhookVerifier, parse_webhook_payload, target_status

logger = logging.getLogger(__name__)

AUTH_PATH = "/payment/auth"
DETAIL_PATH = "/payment/detail"
REFUND_PATH = "/payment/refund"
CANCEL_PATH = "/payment/cancel"

# Fields never written to the order store
SENSITIVE_FIELDS = frozenset([
    "cardToken",
    "cardUserKey",
    "paymentCard",
])


def sanitize_response(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Drop sensitive keys from a gateway response, recursively."""
    sanitized = {}
    for key, value in raw.items():
        if key in SENSITIVE_FIELDS:
            continue
        if isinstance(value, dict):
            sanitized[key] = sanitize_response(value)
        elif isinstance(value, list):
            sanitized[key] = [
                sanitize_response(v) if isinstance(v, dict) else v for v in value
            ]
        else:
            sanitized[key] = value
    return sanitized


@dataclass
class WebhookOutcome:
    """What a verified webhook did to the order store."""
    conversation_id: str
    new_status: Optional[str]
    applied: bool


class PaymentService:
    """Service class for payment operations with persistence."""

    def __init__(
        self,
        gateway: GatewayClient,
        database: DatabaseManager,
        config: RelayConfig,
    ):
        """Initialize the service.

        Args:
            gateway: Signed gateway client.
            database: Owner of the order store connection pool.
            config: Relay configuration.
        """
        self.gateway = gateway
        self.database = database
        self.config = config
        self.verifier = WebhookVerifier(config.credentials.secret_key)

    async def create_payment(self, request: CreatePaymentRequest) -> PaymentSummary:
        """Authorize a payment with the gateway and record it as pending.

        Raises:
            GatewayError: The gateway declined the payment.
            NetworkError: The gateway could not be reached.
            StorageError: The charge went through but the record could not
                be written. The charge is not rolled back.
        """
        pricing = compute_pricing(request.basketItems, self.config.vat_rate)
        conversation_id = request.conversationId or new_identifier()
        basket_id = request.basketId or new_identifier()

        buyer = request.customer.model_dump(mode="json", exclude_none=True)
        buyer["identityNumber"] = buyer.get("identityNumber") or self.config.default_identity_number
        buyer["ip"] = buyer.get("ip") or self.config.default_buyer_ip

        body = AuthorizeBody(
            locale=request.locale or self.config.locale,
            conversationId=conversation_id,
            price=pricing.total_price,
            paidPrice=pricing.paid_price,
            installment=request.installment,
            paymentChannel=request.paymentChannel,
            basketId=basket_id,
            paymentCard=request.paymentCard.model_dump(mode="json", exclude_none=True),
            buyer=buyer,
            shippingAddress=request.shippingAddress.model_dump(mode="json", exclude_none=True),
            billingAddress=request.billingAddress.model_dump(mode="json", exclude_none=True),
            basketItems=[
                item.model_dump(mode="json", exclude_none=True) for item in request.basketItems
            ],
            currency=request.currency,
        )

        logger.info(
            f"Authorizing payment {conversation_id}: price {pricing.total_price}, "
            f"vat {pricing.vat}, paid {pricing.paid_price} {request.currency}"
        )
        result = await self.gateway.call("POST", AUTH_PATH, body)
        data = result.data

        item_transactions = data.get("itemTransactions") or []
        first_transaction_id = None
        if item_transactions and isinstance(item_transactions[0], dict):
            first_transaction_id = item_transactions[0].get("paymentTransactionId")

        record_key = str(data.get("conversationId") or conversation_id)
        try:
            async with self.database.session() as session:
                payments = PaymentRecordRepository(session)
                history = StatusHistoryRepository(session)
                await payments.create(
                    conversation_id=record_key,
                    amount=pricing.total_price,
                    paid_price=pricing.paid_price,
                    currency=request.currency,
                    gateway_payment_id=_as_str(data.get("paymentId")),
                    gateway_transaction_id=_as_str(first_transaction_id),
                    raw_response=sanitize_response(data),
                )
                await history.create(
                    conversation_id=record_key,
                    action=HistoryAction.AUTHORIZE.value,
                    new_status=PaymentStatus.PENDING.value,
                )
        except SQLAlchemyError as e:
            logger.error(
                f"Payment {record_key} was authorized by the gateway "
                f"(paymentId {data.get('paymentId')}) but could not be recorded: {e}"
            )
            raise StorageError("payment authorized but could not be recorded") from e

        return PaymentSummary.from_gateway(data)

    async def get_payment_detail(self, query: PaymentDetailQuery) -> Dict[str, Any]:
        body = DetailBody(
            locale=query.locale or self.config.locale,
            conversationId=query.conversationId,
            paymentId=query.paymentId,
            paymentConversationId=query.paymentConversationId or query.conversationId,
            ip=query.ip or self.config.default_buyer_ip,
        )
        result = await self.gateway.call("POST", DETAIL_PATH, body)
        return result.data

    async def refund_payment(self, request: RefundRequest) -> Dict[str, Any]:
        body = RefundBody(
            locale=request.locale or self.config.locale,
            conversationId=request.conversationId,
            paymentTransactionId=request.paymentTransactionId,
            price=request.price,
            ip=request.ip,
            currency=request.currency,
        )
        result = await self.gateway.call("POST", REFUND_PATH, body)
        await self._record_history(
            request.conversationId,
            HistoryAction.REFUND.value,
            detail={
                "paymentTransactionId": request.paymentTransactionId,
                "price": str(request.price),
            },
        )
        return result.data

    async def cancel_payment(self, request: CancelRequest) -> Dict[str, Any]:
        body = CancelBody(
            locale=request.locale or self.config.locale,
            conversationId=request.conversationId,
            paymentId=request.paymentId,
            ip=request.ip,
        )
        result = await self.gateway.call("POST", CANCEL_PATH, body)
        await self._record_history(
            request.conversationId,
            HistoryAction.CANCEL.value,
            detail={"paymentId": request.paymentId},
        )
        return result.data

    async def handle_webhook(
        self, payload: Dict[str, Any], signature: Optional[str]
    ) -> WebhookOutcome:
        """Verify a webhook and apply the status transition it carries.

        The body is parsed once; the parsed fields are both the ones the
        signature is checked against and the ones applied. Nothing is
        written unless the signature matches.

        Raises:
            ValidationError: The body has a field of an unusable type.
            SignatureInvalid: Signature missing or wrong. Nothing is written.
            StorageError: The order store could not be updated.
        """
        try:
            event = parse_webhook_payload(payload)
        except ValidationError as e:
            logger.warning(f"Rejected malformed webhook: {e.message}")
            raise

        if not self.verifier.verify(event, signature):
            logger.warning(
                f"Rejected webhook with invalid signature for conversation "
                f"{event.conversation_id!r}"
            )
            raise SignatureInvalid("webhook signature verification failed")

        return await self.apply_webhook_event(event)

    async def apply_webhook_event(self, event: WebhookPayload) -> WebhookOutcome:
        """Move a pending record to its terminal status. Replays overwrite harmlessly."""
        conversation_id = event.conversation_id or ""
        new_status = target_status(event.status)

        if new_status is None:
            logger.info(
                f"Webhook {event.event_type} for {conversation_id} has status "
                f"{event.status}; leaving record unchanged"
            )
            return WebhookOutcome(conversation_id, None, False)

        if not conversation_id:
            logger.warning("Verified webhook carries no conversation id; ignoring")
            return WebhookOutcome(conversation_id, new_status, False)

        try:
            async with self.database.session() as session:
                payments = PaymentRecordRepository(session)
                matched = await payments.set_status(conversation_id, new_status)
                if matched:
                    await StatusHistoryRepository(session).create(
                        conversation_id=conversation_id,
                        action=HistoryAction.WEBHOOK.value,
                        new_status=new_status,
                        event_type=event.event_type,
                        detail={"paymentId": event.payment_id, "status": event.status},
                    )
        except SQLAlchemyError as e:
            logger.error(f"Failed to apply webhook for {conversation_id}: {e}")
            raise StorageError("could not update payment record") from e

        if not matched:
            logger.warning(
                f"No payment record for conversation {conversation_id}; "
                f"webhook {event.event_type} acknowledged without changes"
            )
        return WebhookOutcome(conversation_id, new_status, matched)

    async def _record_history(
        self,
        conversation_id: str,
        action: str,
        detail: Optional[Dict[str, Any]] = None,
    ) -> None:
        try:
            async with self.database.session() as session:
                await StatusHistoryRepository(session).create(
                    conversation_id=conversation_id,
                    action=action,
                    detail=detail,
                )
        except SQLAlchemyError as e:
            logger.error(
                f"Gateway accepted {action} for {conversation_id} "
                f"but history could not be written: {e}"
            )
            raise StorageError(f"{action} accepted but could not be recorded") from e
        logger.info(f"Recorded {action} for {conversation_id}")


def _as_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)
