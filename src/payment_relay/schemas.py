"""Typed request and response models.

Incoming storefront requests are validated into these models before any
gateway body is built, so the body that gets signed always has the same
field order.
"""

import uuid
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Annotated, Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, StringConstraints
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError

RequiredStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
Price = Annotated[Decimal, Field(gt=0)]

CENT = Decimal("0.01")


class _WireModel(BaseModel):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)


class BasketItem(_WireModel):
    id: RequiredStr
    name: RequiredStr
    category1: RequiredStr
    price: Price
    category2: Optional[str] = None
    itemType: str = "PHYSICAL"


class PaymentCard(_WireModel):
    cardHolderName: RequiredStr
    cardNumber: RequiredStr
    expireMonth: RequiredStr
    expireYear: RequiredStr
    cvc: RequiredStr


class Customer(_WireModel):
    id: RequiredStr
    name: RequiredStr
    surname: RequiredStr
    email: RequiredStr
    phone: RequiredStr
    registrationAddress: RequiredStr
    city: RequiredStr
    country: RequiredStr
    identityNumber: Optional[str] = None
    ip: Optional[str] = None


class Address(_WireModel):
    contactName: RequiredStr
    city: RequiredStr
    country: RequiredStr
    address: RequiredStr


class CreatePaymentRequest(_WireModel):
    paymentChannel: RequiredStr
    installment: int = Field(ge=1)
    currency: RequiredStr
    basketItems: List[BasketItem] = Field(min_length=1)
    paymentCard: PaymentCard
    customer: Customer
    shippingAddress: Address
    billingAddress: Address
    conversationId: Optional[str] = None
    basketId: Optional[str] = None
    locale: Optional[str] = None


class PaymentDetailQuery(_WireModel):
    paymentId: RequiredStr
    conversationId: RequiredStr
    paymentConversationId: Optional[str] = None
    ip: Optional[str] = None
    locale: Optional[str] = None


class RefundRequest(_WireModel):
    paymentTransactionId: RequiredStr
    price: Price
    conversationId: RequiredStr
    currency: Optional[str] = None
    ip: Optional[str] = None
    locale: Optional[str] = None


class CancelRequest(_WireModel):
    paymentId: RequiredStr
    conversationId: RequiredStr
    ip: Optional[str] = None
    locale: Optional[str] = None


# Gateway bodies. Field order here is the order that gets signed.

class AuthorizeBody(BaseModel):
    locale: str
    conversationId: str
    price: Decimal
    paidPrice: Decimal
    installment: int
    paymentChannel: str
    basketId: str
    paymentGroup: str = "PRODUCT"
    paymentCard: Dict[str, Any]
    buyer: Dict[str, Any]
    shippingAddress: Dict[str, Any]
    billingAddress: Dict[str, Any]
    basketItems: List[Dict[str, Any]]
    currency: str


class DetailBody(BaseModel):
    locale: str
    conversationId: str
    paymentId: str
    paymentConversationId: str
    ip: str


class RefundBody(BaseModel):
    locale: str
    conversationId: str
    paymentTransactionId: str
    price: Decimal
    ip: Optional[str] = None
    currency: Optional[str] = None


class CancelBody(BaseModel):
    locale: str
    conversationId: str
    paymentId: str
    ip: Optional[str] = None


class ItemTransactionSummary(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    itemId: Optional[str] = None
    paymentTransactionId: Optional[str] = None
    transactionStatus: Optional[int] = None
    price: Optional[Any] = None
    paidPrice: Optional[Any] = None


class PaymentSummary(BaseModel):
    """Trimmed authorization response returned to the storefront."""
    model_config = ConfigDict(coerce_numbers_to_str=True)

    status: str
    conversationId: Optional[str] = None
    price: Optional[Any] = None
    paidPrice: Optional[Any] = None
    installment: Optional[int] = None
    paymentId: Optional[str] = None
    itemTransactions: List[ItemTransactionSummary] = Field(default_factory=list)

    @classmethod
    def from_gateway(cls, data: Dict[str, Any]) -> "PaymentSummary":
        items = [
            ItemTransactionSummary.model_validate(
                {k: item.get(k) for k in ItemTransactionSummary.model_fields}
            )
            for item in data.get("itemTransactions") or []
            if isinstance(item, dict)
        ]
        return cls(
            status=data.get("status", "success"),
            conversationId=data.get("conversationId"),
            price=data.get("price"),
            paidPrice=data.get("paidPrice"),
            installment=data.get("installment"),
            paymentId=data.get("paymentId"),
            itemTransactions=items,
        )


@dataclass(frozen=True)
class Pricing:
    total_price: Decimal
    vat: Decimal
    paid_price: Decimal


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def compute_pricing(items: Sequence[BasketItem], vat_rate: float) -> Pricing:
    """Sum item prices and add VAT, rounding each amount to cents."""
    total = sum((item.price for item in items), Decimal("0"))
    vat = round_money(total * Decimal(str(vat_rate)))
    paid = round_money(total + vat)
    return Pricing(total_price=total, vat=vat, paid_price=paid)


def new_identifier() -> str:
    return uuid.uuid4().hex


def _format_loc(loc: Sequence[Any]) -> str:
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}" if path else str(part)
    return path


def describe_validation_error(exc: PydanticValidationError) -> str:
    """Turn a pydantic error into one line naming every offending field."""
    fields = []
    for error in exc.errors():
        path = _format_loc(error.get("loc", ())) or "body"
        if path not in fields:
            fields.append(path)
    return f"missing or invalid fields: {', '.join(fields)}"


def parse_request(model: type, data: Any):
    """Validate raw request data into ``model``.

    Raises:
        ValidationError: Listing every missing or malformed field.
    """
    if not isinstance(data, dict):
        raise ValidationError("request body must be a JSON object")
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(describe_validation_error(e)) from e
