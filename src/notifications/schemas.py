from pydantic import BaseModel
from typing import Optional
from enum import Enum


class Channel(str, Enum):
    EMAIL = "email"
    WHATSAPP = "whatsapp"

class DeliveryStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"

class ChannelResult(BaseModel):
    """Outcome of one delivery attempt; provider failures are values, not exceptions"""
    channel: Channel
    provider: str
    status: DeliveryStatus
    message_id: Optional[str] = None
    error: Optional[str] = None
    cost: float = 0
    mock: bool = False

    @property
    def ok(self) -> bool:
        return self.status == DeliveryStatus.SENT

    @classmethod
    def sent(cls, channel: Channel, provider: str, message_id: Optional[str] = None,
             cost: float = 0, mock: bool = False) -> "ChannelResult":
        return cls(channel=channel, provider=provider, status=DeliveryStatus.SENT,
                   message_id=message_id, cost=cost, mock=mock)

    @classmethod
    def failed(cls, channel: Channel, provider: str, error: str) -> "ChannelResult":
        return cls(channel=channel, provider=provider, status=DeliveryStatus.FAILED, error=error)
