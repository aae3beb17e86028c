from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import date


class ReminderRequest(BaseModel):
    """Leave ``event_date`` empty to remind every confirmed holder"""
    event_date: Optional[date] = None

class AnnouncementRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=1000)
    phone_numbers: Optional[List[str]] = Field(None, max_length=500)

class TestWhatsAppRequest(BaseModel):
    phone_number: str = Field(..., min_length=1, max_length=30)
    message: str = Field("Test message from the ticketing backend", min_length=1, max_length=1000)
