from typing import Optional, Tuple
from datetime import datetime
from enum import Enum

from pydantic import BaseModel

from src.bookings.pricing import calculate_ticket_price
from src.bookings.schemas import (
    AddUserRequest, BookingRecord, BookingStatus, CreateBookingRequest, PriceBreakdown,
    QRCodeRecord, ScanResult, UserRecord
)
from src.exceptions import ConflictError, NotFoundError
from src.health.governor import StoreSelector
from src.logger import setup_logger

logger = setup_logger(__name__)


class MarkUsedOutcome(str, Enum):
    MARKED = "marked"
    ALREADY_USED = "already_used"
    NOT_FOUND = "not_found"
    # store unreachable and the ticket is not in the fallback either
    ASSUMED = "assumed"

class MarkUsedResult(BaseModel):
    outcome: MarkUsedOutcome
    ticket_number: str
    ticket: Optional[QRCodeRecord] = None
    used_at: Optional[datetime] = None
    used_by: Optional[str] = None
    mock: bool = False


class BookingService:
    """Booking creation, ticket holders and ticket lookups"""

    def __init__(self, selector: StoreSelector):
        self.selector = selector

    def create_booking(self, request: CreateBookingRequest) -> Tuple[BookingRecord, PriceBreakdown, bool]:
        """Create a pending booking priced by the pricing engine"""
        price = calculate_ticket_price(request.pass_type, request.num_tickets)
        fields = {
            "booking_date": request.booking_date,
            "num_tickets": request.num_tickets,
            "pass_type": request.pass_type.value,
            "ticket_type": request.ticket_type,
            "status": BookingStatus.PENDING.value,
            "total_amount": price.base_price * request.num_tickets,
            "discount_amount": price.savings,
            "final_amount": price.total_amount,
            "bulk_discount_applied": price.discount_applied,
            "original_ticket_price": price.base_price,
            "discounted_price": price.final_price,
        }
        booking, mock = self.selector.write("create_booking", fields)
        logger.info("Created booking %s: %d x %s = %s%s", booking.id, booking.num_tickets,
                    booking.pass_type, booking.final_amount, " (fallback)" if mock else "")
        return booking, price, mock

    def get_booking(self, booking_id: str) -> Tuple[BookingRecord, bool]:
        booking, mock = self.selector.read("get_booking", booking_id)
        if not booking:
            raise NotFoundError("Booking not found", error="Booking not found")
        return booking, mock

    def add_user(self, request: AddUserRequest) -> Tuple[UserRecord, bool]:
        booking, mock = self.get_booking(request.booking_id)
        store = self.selector.store_for(mock)

        if request.is_primary:
            users, _ = self.selector.run(store, "list_users", booking.id)
            if any(user.is_primary for user in users):
                raise ConflictError("Booking already has a primary user")

        user, user_mock = self.selector.run(
            store, "add_user",
            booking.id, request.name, request.email, request.phone, request.is_primary,
        )
        return user, mock or user_mock

    def get_qr_details(self, ticket_number: str) -> Tuple[QRCodeRecord, bool]:
        qr, mock = self.selector.read("get_qr_code", ticket_number)
        if not qr:
            raise NotFoundError("Ticket not found", error="Ticket not found")
        return qr, mock

    def mark_used(
        self,
        ticket_number: str,
        used_by: Optional[str] = None,
        staff_name: Optional[str] = None
    ) -> MarkUsedResult:
        """Flip a ticket to used exactly once; every attempt is recorded as a scan"""

        qr, mock = self.selector.read("mark_qr_used", ticket_number, used_by or staff_name)
        if qr:
            self._record_scan(mock, qr, ScanResult.ACCEPTED, used_by, staff_name)
            logger.info("Ticket %s admitted by %s", ticket_number, used_by or staff_name or "unknown")
            return MarkUsedResult(outcome=MarkUsedOutcome.MARKED, ticket_number=ticket_number,
                                  ticket=qr, used_at=qr.used_at, used_by=qr.used_by, mock=mock)

        # zero rows updated: find out whether the ticket exists at all
        existing, lookup_mock = self.selector.read("get_qr_code", ticket_number)
        mock = mock or lookup_mock
        if existing:
            self._record_scan(mock, existing, ScanResult.ALREADY_USED, used_by, staff_name)
            logger.warning("Ticket %s scanned again (used at %s)", ticket_number, existing.used_at)
            return MarkUsedResult(outcome=MarkUsedOutcome.ALREADY_USED, ticket_number=ticket_number,
                                  ticket=existing, used_at=existing.used_at, used_by=existing.used_by,
                                  mock=mock)

        if mock and not self.selector.governor.healthy:
            admitted = self.selector.fallback.record_offline_admission(ticket_number, used_by or staff_name)
            if admitted:
                self._record_scan(True, admitted, ScanResult.ACCEPTED, used_by, staff_name)
                logger.warning("Store unreachable, admitting unknown ticket %s", ticket_number)
                return MarkUsedResult(outcome=MarkUsedOutcome.ASSUMED, ticket_number=ticket_number,
                                      ticket=admitted, used_at=admitted.used_at, used_by=admitted.used_by,
                                      mock=True)

            # a concurrent scan admitted it first
            existing = self.selector.fallback.get_qr_code(ticket_number)
            self._record_scan(True, existing, ScanResult.ALREADY_USED, used_by, staff_name)
            return MarkUsedResult(outcome=MarkUsedOutcome.ALREADY_USED, ticket_number=ticket_number,
                                  ticket=existing, used_at=existing.used_at, used_by=existing.used_by,
                                  mock=True)

        self._record_scan(mock, None, ScanResult.NOT_FOUND, used_by, staff_name, ticket_number)
        return MarkUsedResult(outcome=MarkUsedOutcome.NOT_FOUND, ticket_number=ticket_number, mock=mock)

    def _record_scan(self, mock, qr, result: ScanResult, staff_id, staff_name, ticket_number=None) -> None:
        self.selector.run(
            self.selector.store_for(mock), "record_scan",
            qr.ticket_number if qr else ticket_number,
            qr.booking_id if qr else None,
            result.value,
            staff_id,
            staff_name,
        )
