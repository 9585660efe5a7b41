"""Inbound webhook verification and status transition rules."""

import hmac
import logging
from typing import Any, Mapping, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from .database.models import PaymentStatus
from .errors import ValidationError
from .schemas import describe_validation_error
from .signing import hmac_sha256_hex

logger = logging.getLogger(__name__)


class WebhookPayload(BaseModel):
    """Callback body sent by the gateway. Untrusted until verified."""

    model_config = ConfigDict(extra="allow", populate_by_name=True, coerce_numbers_to_str=True)

    event_type: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("eventType", "iyziEventType")
    )
    payment_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("paymentId"))
    conversation_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("conversationId", "paymentConversationId"),
    )
    status: Optional[str] = None


# Gateway-side event statuses
EVENT_SUCCESS = "SUCCESS"
EVENT_FAILURE = "FAILURE"
EVENT_PENDING_CREDIT = "PENDING_CREDIT"


def parse_webhook_payload(payload: Union[Mapping[str, Any], WebhookPayload]) -> WebhookPayload:
    """Validate a raw callback body into a WebhookPayload.

    Raises:
        ValidationError: If the body is not an object or a known field has
            an unusable type.
    """
    if isinstance(payload, WebhookPayload):
        return payload
    if not isinstance(payload, Mapping):
        raise ValidationError("webhook body must be a JSON object")
    try:
        return WebhookPayload.model_validate(dict(payload))
    except PydanticValidationError as e:
        raise ValidationError(describe_validation_error(e)) from e


def signing_fields(event: WebhookPayload) -> tuple:
    """Return (eventType, paymentId, conversationId, status) with blanks for absent fields."""
    return (
        event.event_type or "",
        event.payment_id or "",
        event.conversation_id or "",
        event.status or "",
    )


def compute_webhook_signature(
    payload: Union[Mapping[str, Any], WebhookPayload], secret_key: str
) -> str:
    """HMAC-SHA256 hex of secretKey + eventType + paymentId + conversationId + status.

    Fields are read from the validated payload, so the values signed are the
    values a verified event is applied with.
    """
    event_type, payment_id, conversation_id, status = signing_fields(
        parse_webhook_payload(payload)
    )
    key_string = secret_key + event_type + payment_id + conversation_id + status
    return hmac_sha256_hex(secret_key, key_string)


def verify(
    payload: Union[Mapping[str, Any], WebhookPayload],
    provided_signature: Any,
    secret_key: str,
) -> bool:
    """Check a webhook signature in constant time.

    Never raises. A malformed payload or an absent, non-string signature is
    simply rejected.
    """
    if not isinstance(provided_signature, str) or not provided_signature:
        return False
    try:
        expected = compute_webhook_signature(payload, secret_key)
    except ValidationError:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), provided_signature.encode("utf-8"))


class WebhookVerifier:
    """Verifier bound to the process secret key."""

    def __init__(self, secret_key: str):
        self._secret_key = secret_key

    def verify(self, payload, provided_signature) -> bool:
        return verify(payload, provided_signature, self._secret_key)


def target_status(event_status: Optional[str]) -> Optional[str]:
    """Map a gateway event status onto the local record status.

    Returns None when the event must leave the record untouched.
    """
    normalized = (event_status or "").upper()
    if normalized == EVENT_SUCCESS:
        return PaymentStatus.COMPLETED.value
    if normalized == EVENT_PENDING_CREDIT:
        return None
    return PaymentStatus.FAILED.value
