from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class QRCodeRequest(BaseModel):
    """Scanned QR content: a JSON ticket payload or a bare ticket number"""
    qr_code: Optional[str] = None
    qr_data: Optional[str] = None

    @property
    def value(self) -> Optional[str]:
        return self.qr_code or self.qr_data

class QRMarkUsedRequest(QRCodeRequest):
    staff_id: Optional[str] = Field(None, max_length=100)
    staff_name: Optional[str] = Field(None, max_length=100)

class QRVerification(BaseModel):
    qr_id: Optional[str] = None
    ticket_number: str
    booking_id: Optional[str] = None
    user_id: Optional[str] = None
    guest_name: Optional[str] = None
    pass_type: Optional[str] = None
    booking_date: Optional[str] = None
    booking_status: Optional[str] = None
    is_used: bool = False
    used_at: Optional[datetime] = None
    used_by: Optional[str] = None
    expiry_date: Optional[datetime] = None
    expired: bool = False
    valid: bool = False
    mock: bool = False
