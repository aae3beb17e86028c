from datetime import datetime

from sqlalchemy import (
    Column, Integer, BigInteger, String, Boolean, DateTime, Date, Text, Float,
    ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from src.database import Base

# BIGINT keys in PostgreSQL, INTEGER on SQLite so rowid autoincrement still works
BigIntId = BigInteger().with_variant(Integer, "sqlite")

# ================================
# Bookings & Ticket Holders
# ================================
class Booking(Base):
    __tablename__ = "bookings"

    id = Column(BigIntId, primary_key=True, index=True, autoincrement=True)
    booking_date = Column(Date, nullable=False, index=True)
    num_tickets = Column(Integer, nullable=False)
    pass_type = Column(String(20), nullable=False)
    ticket_type = Column(String(20), default="single")
    status = Column(String(20), nullable=False, default="pending", index=True)
    total_amount = Column(Integer, nullable=False, default=0)
    discount_amount = Column(Integer, nullable=False, default=0)
    final_amount = Column(Integer, nullable=False, default=0)
    bulk_discount_applied = Column(Boolean, default=False)
    original_ticket_price = Column(Integer)
    discounted_price = Column(Integer)
    payment_id = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=datetime.now, index=True)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    # Relationships
    users = relationship("BookingUser", back_populates="booking", cascade="all, delete-orphan")
    payments = relationship("Payment", back_populates="booking", cascade="all, delete-orphan")
    qr_codes = relationship("QRCode", back_populates="booking", cascade="all, delete-orphan")

class BookingUser(Base):
    __tablename__ = "booking_users"

    id = Column(BigIntId, primary_key=True, index=True, autoincrement=True)
    booking_id = Column(BigIntId, ForeignKey("bookings.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    email = Column(String(200))
    phone = Column(String(50))
    is_primary = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.now)

    # Relationships
    booking = relationship("Booking", back_populates="users")
    qr_codes = relationship("QRCode", back_populates="user")

# ================================
# Payments
# ================================
class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        UniqueConstraint("booking_id", "provider_order_id", name="uq_payments_booking_order"),
    )

    id = Column(BigIntId, primary_key=True, index=True, autoincrement=True)
    booking_id = Column(BigIntId, ForeignKey("bookings.id"), nullable=False, index=True)
    provider_order_id = Column(String(100), nullable=False, index=True)
    provider_payment_id = Column(String(100), nullable=True)
    amount = Column(Integer, nullable=False, default=0)
    currency = Column(String(10), default="INR")
    status = Column(String(20), nullable=False, default="created", index=True)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    # Relationships
    booking = relationship("Booking", back_populates="payments")

# ================================
# QR Tickets & Scans
# ================================
class QRCode(Base):
    __tablename__ = "qr_codes"

    id = Column(BigIntId, primary_key=True, index=True, autoincrement=True)
    booking_id = Column(BigIntId, ForeignKey("bookings.id"), nullable=False, index=True)
    user_id = Column(BigIntId, ForeignKey("booking_users.id"), nullable=True)
    ticket_number = Column(String(64), unique=True, nullable=False, index=True)
    qr_data = Column(Text, nullable=False)
    qr_code_url = Column(Text)
    expiry_date = Column(DateTime)
    is_used = Column(Boolean, nullable=False, default=False, index=True)
    used_at = Column(DateTime, nullable=True)
    used_by = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.now)

    # Relationships
    booking = relationship("Booking", back_populates="qr_codes")
    user = relationship("BookingUser", back_populates="qr_codes")

class QRScan(Base):
    """Every scan attempt, accepted or rejected"""
    __tablename__ = "qr_scans"

    id = Column(BigIntId, primary_key=True, index=True, autoincrement=True)
    booking_id = Column(BigIntId, nullable=True, index=True)
    ticket_number = Column(String(64), nullable=False, index=True)
    result = Column(String(20), nullable=False)
    staff_id = Column(String(100))
    staff_name = Column(String(100))
    scanned_at = Column(DateTime, default=datetime.now, index=True)

# ================================
# Notification Audit Trail
# ================================
class MessageLog(Base):
    __tablename__ = "message_logs"

    id = Column(BigIntId, primary_key=True, index=True, autoincrement=True)
    booking_id = Column(BigIntId, nullable=True, index=True)
    user_id = Column(BigIntId, nullable=True)
    channel = Column(String(20), nullable=False)
    provider = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False)
    cost_amount = Column(Float, default=0)
    error_message = Column(String(255))
    sent_at = Column(DateTime, default=datetime.now, index=True)

# ================================
# Staff (QR verifier app & admin panel)
# ================================
class StaffUser(Base):
    __tablename__ = "staff_users"

    id = Column(BigIntId, primary_key=True, index=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    email = Column(String(200), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="staff")
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.now)
