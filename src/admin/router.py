from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from src.admin.schemas import AnnouncementRequest, ReminderRequest, TestWhatsAppRequest
from src.admin.service import AdminService
from src.auth.dependencies import require_admin
from src.auth.schemas import StaffPrincipal
from src.bookings.pdf_service import TicketPdfData, render_ticket_pdf
from src.bookings.ticket_service import generate_qr_data_url
from src.dependencies import Runtime, get_campaign_service, get_runtime, get_selector
from src.health.governor import StoreSelector
from src.logger import setup_logger
from src.notifications import CampaignService

logger = setup_logger(__name__)

router = APIRouter()


def get_admin_service(
    selector: StoreSelector = Depends(get_selector),
    runtime: Runtime = Depends(get_runtime)
) -> AdminService:
    return AdminService(
        selector,
        runtime.settings,
        email_service=runtime.email_service,
        whatsapp_service=runtime.whatsapp_service,
        payment_provider=runtime.payment_provider,
        clock=runtime.clock,
    )


def _envelope(data, mock: bool, message: Optional[str] = None):
    response = {"success": True, "data": data, "mock": mock}
    if message:
        response["message"] = message
    return response


# Dashboard
@router.get("/dashboard/stats")
def get_dashboard_stats(service: AdminService = Depends(get_admin_service)):
    """Aggregate booking, revenue and scan counters"""
    stats, mock, reason = service.dashboard_stats()
    return _envelope(stats, mock, reason)

@router.get("/dashboard/recent-scans")
def get_recent_scans(
    limit: int = Query(10, ge=1, le=100),
    service: AdminService = Depends(get_admin_service)
):
    scans, mock, reason = service.recent_scans(limit)
    return _envelope(scans, mock, reason)

@router.get("/dashboard/chart-data")
def get_chart_data(
    days: int = Query(7, ge=1, le=90),
    service: AdminService = Depends(get_admin_service)
):
    """Bookings and revenue per event date"""
    chart, mock, reason = service.chart_data(days)
    return _envelope(chart, mock, reason)

# Listings
@router.get("/bookings")
def get_bookings(
    limit: int = Query(50, ge=1, le=500),
    service: AdminService = Depends(get_admin_service)
):
    bookings, mock, reason = service.list_bookings(limit)
    return _envelope(bookings, mock, service.bookings_message(bookings, mock) or reason)

@router.get("/scans")
def get_scans(
    limit: int = Query(100, ge=1, le=500),
    service: AdminService = Depends(get_admin_service)
):
    """Every scan attempt, newest first"""
    scans, mock, reason = service.list_scans(limit)
    return _envelope(scans, mock, reason)

@router.get("/message-logs")
def get_message_logs(
    booking_id: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
    service: AdminService = Depends(get_admin_service)
):
    logs, mock, reason = service.list_message_logs(booking_id, limit)
    return _envelope(logs, mock, reason)

# Notifications
@router.post("/notifications/reminders")
def send_event_reminders(
    request: ReminderRequest,
    service: CampaignService = Depends(get_campaign_service),
    admin: StaffPrincipal = Depends(require_admin)
):
    """WhatsApp reminder to every confirmed ticket holder, optionally for one event date"""
    logger.info("Event reminders requested by %s for %s", admin.email, request.event_date or "all dates")
    summary = service.send_reminders(request.event_date)
    return _envelope(summary, summary["mock"], f"Reminders sent to {summary['sent']} of {summary['total']}")

@router.post("/notifications/announcement")
def send_announcement(
    request: AnnouncementRequest,
    service: CampaignService = Depends(get_campaign_service),
    admin: StaffPrincipal = Depends(require_admin)
):
    logger.info("Announcement requested by %s", admin.email)
    summary = service.send_announcement(request.message, request.phone_numbers)
    return _envelope(summary, summary["mock"], f"Announcement sent to {summary['sent']} of {summary['total']}")

@router.get("/notifications/whatsapp/{message_id}")
def get_whatsapp_status(
    message_id: str,
    runtime: Runtime = Depends(get_runtime),
    admin: StaffPrincipal = Depends(require_admin)
):
    """Delivery status of one WhatsApp message as the provider reports it"""
    return {"success": True, "data": runtime.whatsapp_service.get_message_status(message_id)}

# System
@router.get("/config/status")
def get_config_status(service: AdminService = Depends(get_admin_service)):
    """Which providers are configured and whether the database is reachable"""
    return {"success": True, "data": service.config_status()}

@router.post("/config/test-whatsapp")
def send_test_whatsapp(
    request: TestWhatsAppRequest,
    runtime: Runtime = Depends(get_runtime),
    admin: StaffPrincipal = Depends(require_admin)
):
    result = runtime.whatsapp_service.send_message(request.phone_number, request.message)
    return {
        "success": result.ok,
        "result": result.model_dump(mode="json"),
        "timestamp": datetime.now().isoformat(),
    }

@router.post("/config/test-pdf")
def render_test_pdf(admin: StaffPrincipal = Depends(require_admin)):
    """Sample ticket PDF for checking the renderer"""
    pdf = render_ticket_pdf(TicketPdfData(
        name="Test User",
        pass_type="couple",
        booking_id="12345",
        ticket_number="TEST-TICKET-001",
        qr_code=generate_qr_data_url("TEST-TICKET-001"),
    ))
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": 'inline; filename="test-ticket.pdf"'},
    )

@router.get("/fallback")
def get_fallback_store(
    service: AdminService = Depends(get_admin_service),
    admin: StaffPrincipal = Depends(require_admin)
):
    """Records taken while the database was unreachable"""
    return {"success": True, "data": service.fallback_snapshot()}

@router.delete("/fallback")
def clear_fallback_store(
    service: AdminService = Depends(get_admin_service),
    admin: StaffPrincipal = Depends(require_admin)
):
    cleared = service.clear_fallback(cleared_by=admin.email)
    return {"success": True, "message": "Fallback store cleared", "cleared": cleared}
