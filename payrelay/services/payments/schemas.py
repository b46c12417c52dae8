"""API request/response schemas for the payment endpoints.

Required-field checks happen in the service so a missing field is reported as
`InvalidRequest` rather than a generic validation failure.
"""

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class OrderCreateRequest(BaseModel):
    """Payload accepted by `POST /orders`."""

    model_config = ConfigDict(populate_by_name=True)

    amount: Any = None
    currency: str = "INR"
    receipt: str | None = None
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("metadata", "notes"),
    )
    app_id: str | None = Field(default=None, alias="appId")


class OrderView(BaseModel):
    id: str
    amount: int
    currency: str
    receipt: str
    status: str


class OrderCreateResponse(BaseModel):
    success: bool = True
    order: OrderView


class PaymentVerifyRequest(BaseModel):
    """Payload accepted by `POST /payments/verify`.

    The gateway's own checkout field names (`razorpay_order_id`, ...) are
    accepted as well.
    """

    model_config = ConfigDict(populate_by_name=True)

    order_id: str | None = Field(default=None, validation_alias=AliasChoices("orderId", "razorpay_order_id"))
    payment_id: str | None = Field(default=None, validation_alias=AliasChoices("paymentId", "razorpay_payment_id"))
    signature: str | None = Field(default=None, validation_alias=AliasChoices("signature", "razorpay_signature"))
    linked_record_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("linkedRecordId", "consultationId"),
    )
    amount: int | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    test_mode_override: bool | None = Field(
        default=None,
        validation_alias=AliasChoices("testModeOverride", "isTestMode"),
    )
    app_id: str | None = Field(default=None, alias="appId")

    def resolved_linked_record_id(self) -> str | None:
        """Explicit field first, then the ids clients put in metadata."""

        return (
            self.linked_record_id
            or self.metadata.get("linkedRecordId")
            or self.metadata.get("consultationId")
            or None
        )
