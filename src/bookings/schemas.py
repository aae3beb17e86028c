from pydantic import AliasChoices, BaseModel, EmailStr, Field, field_validator
from typing import Any, Dict, List, Optional
from datetime import date, datetime
from enum import Enum


def _id_to_str(value):
    # numeric database ids travel as strings to avoid precision loss in JSON clients
    return None if value is None else str(value)


class PassType(str, Enum):
    """Ticket categories sold for the event"""
    FEMALE = "female"
    COUPLE = "couple"
    KIDS = "kids"
    FAMILY = "family"
    MALE = "male"

class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"

class PaymentStatus(str, Enum):
    CREATED = "created"
    CAPTURED = "captured"
    FAILED = "failed"

class ScanResult(str, Enum):
    ACCEPTED = "accepted"
    ALREADY_USED = "already_used"
    NOT_FOUND = "not_found"

# ================================
# Pricing
# ================================
class PriceBreakdown(BaseModel):
    """Result of the pricing engine for one (pass type, quantity) pair"""
    base_price: int = Field(alias="basePrice")
    final_price: int = Field(alias="finalPrice")
    discount_applied: bool = Field(alias="discountApplied")
    total_amount: int = Field(alias="totalAmount")
    savings: int

    class Config:
        populate_by_name = True

# ================================
# Stored records (shared by the SQL store and the in-memory fallback)
# ================================
class StoreRecord(BaseModel):
    class Config:
        from_attributes = True

    def to_response(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

class BookingRecord(StoreRecord):
    id: str
    booking_date: date
    num_tickets: int
    pass_type: str
    ticket_type: Optional[str] = "single"
    status: str = BookingStatus.PENDING.value
    total_amount: int = 0
    discount_amount: int = 0
    final_amount: int = 0
    bulk_discount_applied: bool = False
    original_ticket_price: Optional[int] = None
    discounted_price: Optional[int] = None
    payment_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    is_mock: bool = Field(default=False, serialization_alias="_isMockBooking")

    @field_validator("id", "payment_id", mode="before")
    @classmethod
    def normalize_ids(cls, value):
        return _id_to_str(value)

    def to_response(self) -> Dict[str, Any]:
        data = super().to_response()
        if not self.is_mock:
            data.pop("_isMockBooking", None)
        return data

class UserRecord(StoreRecord):
    id: str
    booking_id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    is_primary: bool = False
    created_at: Optional[datetime] = None

    @field_validator("id", "booking_id", mode="before")
    @classmethod
    def normalize_ids(cls, value):
        return _id_to_str(value)

class PaymentRecord(StoreRecord):
    id: str
    booking_id: str
    provider_order_id: str
    provider_payment_id: Optional[str] = None
    amount: int = 0
    currency: str = "INR"
    status: str = PaymentStatus.CREATED.value
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("id", "booking_id", mode="before")
    @classmethod
    def normalize_ids(cls, value):
        return _id_to_str(value)

class QRCodeRecord(StoreRecord):
    id: str
    booking_id: Optional[str] = None
    user_id: Optional[str] = None
    ticket_number: str
    qr_data: str
    qr_code_url: Optional[str] = None
    expiry_date: Optional[datetime] = None
    is_used: bool = False
    used_at: Optional[datetime] = None
    used_by: Optional[str] = None
    created_at: Optional[datetime] = None
    # joined for ticket lookups
    pass_type: Optional[str] = None
    user_name: Optional[str] = None

    @field_validator("id", "booking_id", "user_id", mode="before")
    @classmethod
    def normalize_ids(cls, value):
        return _id_to_str(value)

class ScanRecord(StoreRecord):
    id: str
    booking_id: Optional[str] = None
    ticket_number: str
    result: str
    staff_id: Optional[str] = None
    staff_name: Optional[str] = None
    scanned_at: Optional[datetime] = None

    @field_validator("id", "booking_id", mode="before")
    @classmethod
    def normalize_ids(cls, value):
        return _id_to_str(value)

class MessageLogRecord(StoreRecord):
    id: str
    booking_id: Optional[str] = None
    user_id: Optional[str] = None
    channel: str
    provider: str
    status: str
    cost_amount: float = 0
    error_message: Optional[str] = None
    sent_at: Optional[datetime] = None

    @field_validator("id", "booking_id", "user_id", mode="before")
    @classmethod
    def normalize_ids(cls, value):
        return _id_to_str(value)

# ================================
# Requests
# ================================
class BookingIdRequest(BaseModel):
    booking_id: str

    @field_validator("booking_id", mode="before")
    @classmethod
    def normalize_booking_id(cls, value):
        return _id_to_str(value)

class CreateBookingRequest(BaseModel):
    """Request to create a pending booking"""
    booking_date: date
    num_tickets: int = Field(..., ge=1, le=100)
    pass_type: PassType
    ticket_type: str = "single"

class AddUserRequest(BookingIdRequest):
    name: str = Field(..., min_length=1, max_length=200)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    is_primary: bool = False

class CreatePaymentRequest(BookingIdRequest):
    pass

class ConfirmPaymentRequest(BookingIdRequest):
    """Client callback after the provider reports a successful payment"""
    provider_order_id: str = Field(validation_alias=AliasChoices("provider_order_id", "razorpay_order_id"))
    provider_payment_id: str = Field(validation_alias=AliasChoices("provider_payment_id", "razorpay_payment_id"))
    provider_signature: Optional[str] = Field(
        None, validation_alias=AliasChoices("provider_signature", "razorpay_signature")
    )

class TicketNumberRequest(BaseModel):
    ticket_number: str = Field(..., min_length=1)

class MarkTicketUsedRequest(TicketNumberRequest):
    used_by: Optional[str] = Field(None, max_length=100)

class ResendNotificationsRequest(BookingIdRequest):
    pass

# ================================
# Results
# ================================
class ProviderOrder(BaseModel):
    """Order minted by the payment provider"""
    id: str
    amount: int  # smallest currency unit (paise)
    currency: str
    receipt: str
    status: str = "created"
    checkout_url: Optional[str] = None

class ConfirmationResult(BaseModel):
    booking: BookingRecord
    payment: PaymentRecord
    qr_codes: List[QRCodeRecord] = []
    notifications: Dict[str, Any] = {}
    mock: bool = False
