from fastapi import APIRouter, Depends, Response, status

from src.bookings.booking_service import BookingService, MarkUsedOutcome
from src.bookings.payment_service import PaymentOrchestrator
from src.bookings.pdf_service import TicketPdfData, render_ticket_pdf
from src.bookings.pricing import pricing_table
from src.bookings.schemas import (
    AddUserRequest, ConfirmPaymentRequest, CreateBookingRequest, CreatePaymentRequest,
    MarkTicketUsedRequest, ResendNotificationsRequest, TicketNumberRequest
)
from src.dependencies import Runtime, get_booking_service, get_payment_orchestrator, get_runtime
from src.exceptions import NotFoundError, TicketAlreadyUsedError

router = APIRouter()

# Booking Endpoints
@router.post("/create", status_code=status.HTTP_201_CREATED)
def create_booking(
    request: CreateBookingRequest,
    service: BookingService = Depends(get_booking_service)
):
    """Create a pending booking"""
    booking, price, mock = service.create_booking(request)
    return {
        "success": True,
        "booking": booking.to_response(),
        "pricing": price.model_dump(by_alias=True),
        "mock": mock,
    }

@router.post("/add-users", status_code=status.HTTP_201_CREATED)
def add_user(
    request: AddUserRequest,
    service: BookingService = Depends(get_booking_service)
):
    """Attach a ticket holder to a booking"""
    user, mock = service.add_user(request)
    return {"success": True, "user": user.to_response(), "mock": mock}

@router.get("/pricing")
def get_pricing():
    """Unit prices and bulk rules per pass type"""
    return {"success": True, "pricing": pricing_table()}

# Payment Endpoints
@router.post("/create-payment")
def create_payment(
    request: CreatePaymentRequest,
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator)
):
    """Create a provider order for the booking's server-side price"""
    order, payment, mock = orchestrator.create_order(request.booking_id)
    return {
        "success": True,
        "order": order.model_dump(),
        "payment": payment.to_response(),
        "mock": mock,
    }

@router.post("/confirm-payment")
def confirm_payment(
    request: ConfirmPaymentRequest,
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator)
):
    """Capture the payment, confirm the booking and issue its tickets"""
    result = orchestrator.confirm_payment(
        request.booking_id,
        request.provider_order_id,
        request.provider_payment_id,
        request.provider_signature,
    )
    return {
        "success": True,
        "message": "Payment confirmed and tickets generated",
        "booking": result.booking.to_response(),
        "payment": result.payment.to_response(),
        "qrCodes": [qr.to_response() for qr in result.qr_codes],
        "notifications": result.notifications,
        "mock": result.mock,
    }

@router.post("/resend-notifications")
def resend_notifications(
    request: ResendNotificationsRequest,
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator)
):
    """Send the ticket email and WhatsApp message again"""
    notifications, mock = orchestrator.resend_notifications(request.booking_id)
    return {"success": True, "notifications": notifications, "mock": mock}

# Ticket Endpoints
@router.post("/qr-details")
def get_qr_details(
    request: TicketNumberRequest,
    service: BookingService = Depends(get_booking_service)
):
    """Look up a ticket by its ticket number"""
    ticket, mock = service.get_qr_details(request.ticket_number)
    return {"success": True, "ticket": ticket.to_response(), "mock": mock}

@router.post("/mark-used")
def mark_ticket_used(
    request: MarkTicketUsedRequest,
    service: BookingService = Depends(get_booking_service)
):
    """Admit a ticket; a second attempt on the same ticket is rejected"""
    result = service.mark_used(request.ticket_number, used_by=request.used_by)

    if result.outcome == MarkUsedOutcome.NOT_FOUND:
        raise NotFoundError("Ticket not found", error="Ticket not found")
    if result.outcome == MarkUsedOutcome.ALREADY_USED:
        raise TicketAlreadyUsedError(
            "Ticket has already been used",
            details={
                "used_at": result.used_at.isoformat() if result.used_at else None,
                "used_by": result.used_by,
            },
        )

    return {
        "success": True,
        "message": "Ticket marked as used",
        "ticket": result.ticket.to_response() if result.ticket else None,
        "used_at": result.used_at.isoformat() if result.used_at else None,
        "used_by": result.used_by,
        "mock": result.mock,
    }

@router.get("/tickets/{ticket_number}/pdf")
def download_ticket_pdf(
    ticket_number: str,
    service: BookingService = Depends(get_booking_service),
    runtime: Runtime = Depends(get_runtime)
):
    """Printable PDF for one ticket"""
    ticket, _ = service.get_qr_details(ticket_number)
    booking, _ = service.get_booking(ticket.booking_id)

    pdf = render_ticket_pdf(TicketPdfData(
        name=ticket.user_name,
        event_date=booking.booking_date,
        pass_type=ticket.pass_type or booking.pass_type,
        qr_code=ticket.qr_code_url,
        booking_id=booking.id,
        ticket_number=ticket.ticket_number,
    ), timeout=runtime.settings.PROVIDER_TIMEOUT_SECONDS)

    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="Ticket_{ticket.ticket_number}.pdf"'},
    )
