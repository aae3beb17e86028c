from fastapi import APIRouter, Depends

from src.bookings.booking_service import BookingService, MarkUsedOutcome
from src.dependencies import Runtime, get_booking_service, get_runtime, get_selector
from src.exceptions import NotFoundError, TicketAlreadyUsedError
from src.health.governor import StoreSelector
from src.qr.schemas import QRCodeRequest, QRMarkUsedRequest
from src.qr.service import QRVerificationService

router = APIRouter()


def get_qr_service(
    selector: StoreSelector = Depends(get_selector),
    booking_service: BookingService = Depends(get_booking_service),
    runtime: Runtime = Depends(get_runtime)
) -> QRVerificationService:
    return QRVerificationService(selector, booking_service, clock=runtime.clock)


@router.post("/verify")
def verify_qr(request: QRCodeRequest, service: QRVerificationService = Depends(get_qr_service)):
    """Check a scanned ticket without admitting it"""
    verification = service.verify(request.value)
    return {
        "success": True,
        "message": "QR code verified successfully",
        "data": verification.model_dump(mode="json"),
        "mock": verification.mock,
    }

# kept for older scanner builds
@router.post("/details")
def qr_details(request: QRCodeRequest, service: QRVerificationService = Depends(get_qr_service)):
    return verify_qr(request, service)

@router.post("/mark-used")
def mark_qr_used(request: QRMarkUsedRequest, service: QRVerificationService = Depends(get_qr_service)):
    """Admit a ticket at the gate"""
    result = service.mark_used(request.value, staff_id=request.staff_id, staff_name=request.staff_name)

    if result.outcome == MarkUsedOutcome.NOT_FOUND:
        raise NotFoundError("Invalid QR code", error="Ticket not found")
    if result.outcome == MarkUsedOutcome.ALREADY_USED:
        raise TicketAlreadyUsedError(
            "QR code has already been used",
            details={
                "used_at": result.used_at.isoformat() if result.used_at else None,
                "used_by": result.used_by,
            },
        )

    return {
        "success": True,
        "message": "QR code marked as used successfully",
        "data": {
            "ticket_number": result.ticket_number,
            "used_at": result.used_at.isoformat() if result.used_at else None,
            "used_by": result.used_by,
        },
        "mock": result.mock,
    }

@router.get("/health")
def qr_health(runtime: Runtime = Depends(get_runtime)):
    governor = runtime.governor
    healthy = governor.is_healthy()
    return {
        "success": True,
        "service": "qr",
        "database": "connected" if healthy else "unavailable",
        "mode": "normal" if healthy else "fallback",
        "health": governor.status(),
    }
