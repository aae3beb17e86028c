"""
Booking store adapter.

``BookingStore`` is the single interface the services talk to. It has two
implementations:

- ``SqlBookingStore``: the relational store, one SQLAlchemy ``Session`` per
  request. Connectivity failures surface as ``StoreUnavailableError``;
  integrity and programming errors propagate untouched.
- ``InMemoryBookingStore``: the process-scoped fallback used while the
  relational store is unreachable. It is populated from write paths only,
  is never loaded from the database and is only cleared by an operator.
"""

import functools
import itertools
import threading
import time
from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import and_, func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from src.bookings.schemas import (
    BookingRecord, BookingStatus, MessageLogRecord, PaymentRecord, PaymentStatus,
    QRCodeRecord, ScanRecord, UserRecord
)
from src.database import is_connectivity_error
from src.exceptions import StoreUnavailableError
from src.logger import setup_logger
from src.models import Booking, BookingUser, MessageLog, Payment, QRCode, QRScan

logger = setup_logger(__name__)

CHART_WINDOW_DAYS = 7


class BookingStore(ABC):
    """Typed access to bookings, ticket holders, payments, QR tickets and audit logs"""

    name = "store"

    # Bookings
    @abstractmethod
    def create_booking(self, fields: Dict[str, Any]) -> BookingRecord: ...

    @abstractmethod
    def get_booking(self, booking_id: str) -> Optional[BookingRecord]: ...

    @abstractmethod
    def update_booking(self, booking_id: str, **fields) -> Optional[BookingRecord]: ...

    @abstractmethod
    def confirm_booking(self, booking_id: str, **fields) -> Optional[BookingRecord]:
        """Move a ``pending`` booking to ``confirmed``; None when it was not pending."""

    # Ticket holders
    @abstractmethod
    def add_user(self, booking_id: str, name: str, email: Optional[str],
                 phone: Optional[str], is_primary: bool) -> UserRecord: ...

    @abstractmethod
    def list_users(self, booking_id: str) -> List[UserRecord]: ...

    @abstractmethod
    def confirmed_contacts(self, event_date: Optional[date] = None) -> List[Tuple[BookingRecord, UserRecord]]:
        """Confirmed bookings, optionally for one event date, paired with their primary holder."""

    # Payments
    @abstractmethod
    def create_payment(self, booking_id: str, provider_order_id: str, amount: int,
                       currency: str) -> PaymentRecord: ...

    @abstractmethod
    def get_payment(self, booking_id: str, provider_order_id: str) -> Optional[PaymentRecord]: ...

    @abstractmethod
    def capture_payment(self, booking_id: str, provider_order_id: str,
                        provider_payment_id: str) -> Optional[PaymentRecord]:
        """Move a ``created`` payment to ``captured``; None when no such pending row exists."""

    @abstractmethod
    def insert_captured_payment(self, booking_id: str, provider_order_id: str,
                                provider_payment_id: str, amount: int, currency: str) -> PaymentRecord: ...

    @abstractmethod
    def latest_payment(self, booking_id: str, status: Optional[str] = None) -> Optional[PaymentRecord]: ...

    # QR tickets
    @abstractmethod
    def create_qr_code(self, booking_id: str, user_id: Optional[str], ticket_number: str,
                       qr_data: str, qr_code_url: str, expiry_date: datetime) -> QRCodeRecord: ...

    @abstractmethod
    def list_qr_codes(self, booking_id: str) -> List[QRCodeRecord]: ...

    @abstractmethod
    def get_qr_code(self, ticket_number: str) -> Optional[QRCodeRecord]: ...

    @abstractmethod
    def mark_qr_used(self, ticket_number: str, used_by: Optional[str]) -> Optional[QRCodeRecord]:
        """Flip ``is_used`` only if currently unused; None when nothing was updated."""

    @abstractmethod
    def record_scan(self, ticket_number: str, booking_id: Optional[str], result: str,
                    staff_id: Optional[str], staff_name: Optional[str]) -> ScanRecord: ...

    # Audit trail
    @abstractmethod
    def add_message_log(self, booking_id: Optional[str], user_id: Optional[str], channel: str,
                        provider: str, status: str, cost_amount: float = 0,
                        error_message: Optional[str] = None) -> MessageLogRecord: ...

    @abstractmethod
    def list_message_logs(self, booking_id: Optional[str] = None, limit: int = 100) -> List[MessageLogRecord]: ...

    # Admin reads
    @abstractmethod
    def dashboard_stats(self, now: datetime) -> Dict[str, Any]: ...

    @abstractmethod
    def recent_scans(self, limit: int = 10) -> List[Dict[str, Any]]: ...

    @abstractmethod
    def chart_data(self, today: date, days: int = CHART_WINDOW_DAYS) -> List[Dict[str, Any]]: ...

    @abstractmethod
    def list_bookings(self, limit: int = 50) -> List[Dict[str, Any]]: ...

    @abstractmethod
    def list_scans(self, limit: int = 100) -> List[ScanRecord]: ...


def booking_summary(booking: BookingRecord, users: List[UserRecord],
                    payments: List[PaymentRecord]) -> Dict[str, Any]:
    """Flatten a booking with its primary contact for the admin panel"""
    primary = primary_user(users)
    data = booking.to_response()
    data.update({
        "users": [user.to_response() for user in users],
        "payments": [payment.to_response() for payment in payments],
        "full_name": primary.name if primary else "N/A",
        "email": (primary.email if primary else None) or "N/A",
        "phone": (primary.phone if primary else None) or "N/A",
        "quantity": booking.num_tickets,
        "payment_status": payments[0].status if payments else "pending",
    })
    return data


def primary_user(users: Iterable[UserRecord]) -> Optional[UserRecord]:
    users = list(users)
    for user in users:
        if user.is_primary:
            return user
    return users[0] if users else None


def _start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def _scan_entry(qr: QRCodeRecord) -> Dict[str, Any]:
    return {
        "id": qr.id,
        "ticket_number": qr.ticket_number,
        "status": "scanned",
        "created_at": qr.used_at.isoformat() if qr.used_at else None,
        "used_by": qr.used_by,
        "user_name": qr.user_name,
        "booking_id": qr.booking_id,
    }


# ================================
# Relational store
# ================================
def _guarded(method):
    """Translate connectivity failures into StoreUnavailableError, roll back on any failure."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except (SQLAlchemyError, OSError) as exc:
            try:
                self.db.rollback()
            except SQLAlchemyError:
                logger.debug("Rollback failed after %s", method.__name__, exc_info=True)
            if is_connectivity_error(exc):
                logger.warning("Store unreachable during %s: %s", method.__name__, exc)
                raise StoreUnavailableError(str(exc)) from exc
            raise

    return wrapper


def _pk(value) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class SqlBookingStore(BookingStore):
    name = "database"

    def __init__(self, db: Session):
        self.db = db

    # Bookings
    @_guarded
    def create_booking(self, fields: Dict[str, Any]) -> BookingRecord:
        booking = Booking(**fields)
        self.db.add(booking)
        self.db.commit()
        self.db.refresh(booking)
        return BookingRecord.model_validate(booking)

    @_guarded
    def get_booking(self, booking_id: str) -> Optional[BookingRecord]:
        pk = _pk(booking_id)
        if pk is None:
            return None
        booking = self.db.query(Booking).filter(Booking.id == pk).first()
        return BookingRecord.model_validate(booking) if booking else None

    @_guarded
    def update_booking(self, booking_id: str, **fields) -> Optional[BookingRecord]:
        pk = _pk(booking_id)
        booking = self.db.query(Booking).filter(Booking.id == pk).first() if pk is not None else None
        if not booking:
            return None
        for key, value in fields.items():
            setattr(booking, key, value)
        self.db.commit()
        self.db.refresh(booking)
        return BookingRecord.model_validate(booking)

    @_guarded
    def confirm_booking(self, booking_id: str, **fields) -> Optional[BookingRecord]:
        pk = _pk(booking_id)
        if pk is None:
            return None
        # conditional UPDATE: only one concurrent confirmation wins
        result = self.db.execute(
            update(Booking)
            .where(Booking.id == pk, Booking.status == BookingStatus.PENDING.value)
            .values(status=BookingStatus.CONFIRMED.value, **fields)
        )
        self.db.commit()
        if result.rowcount == 0:
            return None
        return self.get_booking(booking_id)

    # Ticket holders
    @_guarded
    def add_user(self, booking_id, name, email, phone, is_primary) -> UserRecord:
        user = BookingUser(booking_id=_pk(booking_id), name=name, email=email,
                           phone=phone, is_primary=is_primary)
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return UserRecord.model_validate(user)

    @_guarded
    def list_users(self, booking_id: str) -> List[UserRecord]:
        users = self.db.query(BookingUser).filter(
            BookingUser.booking_id == _pk(booking_id)
        ).order_by(BookingUser.id).all()
        return [UserRecord.model_validate(user) for user in users]

    @_guarded
    def confirmed_contacts(self, event_date=None) -> List[Tuple[BookingRecord, UserRecord]]:
        query = self.db.query(Booking).filter(Booking.status == BookingStatus.CONFIRMED.value)
        if event_date is not None:
            query = query.filter(Booking.booking_date == event_date)

        contacts = []
        for booking in query.order_by(Booking.id).all():
            users = sorted(booking.users, key=lambda user: user.id)
            holder = primary_user(UserRecord.model_validate(user) for user in users)
            if holder:
                contacts.append((BookingRecord.model_validate(booking), holder))
        return contacts

    # Payments
    @_guarded
    def create_payment(self, booking_id, provider_order_id, amount, currency) -> PaymentRecord:
        payment = Payment(booking_id=_pk(booking_id), provider_order_id=provider_order_id,
                          amount=amount, currency=currency, status=PaymentStatus.CREATED.value)
        self.db.add(payment)
        self.db.commit()
        self.db.refresh(payment)
        return PaymentRecord.model_validate(payment)

    @_guarded
    def get_payment(self, booking_id, provider_order_id) -> Optional[PaymentRecord]:
        payment = self.db.query(Payment).filter(
            Payment.booking_id == _pk(booking_id),
            Payment.provider_order_id == provider_order_id,
        ).first()
        return PaymentRecord.model_validate(payment) if payment else None

    @_guarded
    def capture_payment(self, booking_id, provider_order_id, provider_payment_id) -> Optional[PaymentRecord]:
        result = self.db.execute(
            update(Payment)
            .where(
                Payment.booking_id == _pk(booking_id),
                Payment.provider_order_id == provider_order_id,
                Payment.status == PaymentStatus.CREATED.value,
            )
            .values(
                status=PaymentStatus.CAPTURED.value,
                provider_payment_id=provider_payment_id,
                updated_at=datetime.now(),
            )
        )
        self.db.commit()
        if result.rowcount == 0:
            return None
        return self.get_payment(booking_id, provider_order_id)

    @_guarded
    def insert_captured_payment(self, booking_id, provider_order_id, provider_payment_id,
                                amount, currency) -> PaymentRecord:
        payment = Payment(booking_id=_pk(booking_id), provider_order_id=provider_order_id,
                          provider_payment_id=provider_payment_id, amount=amount,
                          currency=currency, status=PaymentStatus.CAPTURED.value)
        self.db.add(payment)
        try:
            self.db.commit()
        except IntegrityError:
            # a concurrent confirmation already stored this order
            self.db.rollback()
            existing = self.get_payment(booking_id, provider_order_id)
            if existing is None:
                raise
            return existing
        self.db.refresh(payment)
        return PaymentRecord.model_validate(payment)

    @_guarded
    def latest_payment(self, booking_id, status=None) -> Optional[PaymentRecord]:
        query = self.db.query(Payment).filter(Payment.booking_id == _pk(booking_id))
        if status:
            query = query.filter(Payment.status == status)
        payment = query.order_by(Payment.created_at.desc(), Payment.id.desc()).first()
        return PaymentRecord.model_validate(payment) if payment else None

    # QR tickets
    @_guarded
    def create_qr_code(self, booking_id, user_id, ticket_number, qr_data, qr_code_url,
                       expiry_date) -> QRCodeRecord:
        qr = QRCode(booking_id=_pk(booking_id), user_id=_pk(user_id), ticket_number=ticket_number,
                    qr_data=qr_data, qr_code_url=qr_code_url, expiry_date=expiry_date, is_used=False)
        self.db.add(qr)
        self.db.commit()
        self.db.refresh(qr)
        return QRCodeRecord.model_validate(qr)

    @_guarded
    def list_qr_codes(self, booking_id) -> List[QRCodeRecord]:
        codes = self.db.query(QRCode).filter(
            QRCode.booking_id == _pk(booking_id)
        ).order_by(QRCode.id).all()
        return [QRCodeRecord.model_validate(qr) for qr in codes]

    @_guarded
    def get_qr_code(self, ticket_number) -> Optional[QRCodeRecord]:
        row = self.db.query(QRCode, Booking.pass_type, BookingUser.name).outerjoin(
            Booking, QRCode.booking_id == Booking.id
        ).outerjoin(
            BookingUser, QRCode.user_id == BookingUser.id
        ).filter(QRCode.ticket_number == ticket_number).first()
        if not row:
            return None
        qr, pass_type, user_name = row
        record = QRCodeRecord.model_validate(qr)
        return record.model_copy(update={"pass_type": pass_type, "user_name": user_name})

    @_guarded
    def mark_qr_used(self, ticket_number, used_by) -> Optional[QRCodeRecord]:
        # single conditional UPDATE: concurrent scans cannot both succeed
        result = self.db.execute(
            update(QRCode)
            .where(QRCode.ticket_number == ticket_number, QRCode.is_used.is_(False))
            .values(is_used=True, used_at=datetime.now(), used_by=used_by)
        )
        self.db.commit()
        if result.rowcount == 0:
            return None
        return self.get_qr_code(ticket_number)

    @_guarded
    def record_scan(self, ticket_number, booking_id, result, staff_id, staff_name) -> ScanRecord:
        scan = QRScan(ticket_number=ticket_number, booking_id=_pk(booking_id), result=result,
                      staff_id=staff_id, staff_name=staff_name)
        self.db.add(scan)
        self.db.commit()
        self.db.refresh(scan)
        return ScanRecord.model_validate(scan)

    # Audit trail
    @_guarded
    def add_message_log(self, booking_id, user_id, channel, provider, status,
                        cost_amount=0, error_message=None) -> MessageLogRecord:
        log = MessageLog(booking_id=_pk(booking_id), user_id=_pk(user_id), channel=channel,
                         provider=provider, status=status, cost_amount=cost_amount,
                         error_message=(error_message or None) and error_message[:255])
        self.db.add(log)
        self.db.commit()
        self.db.refresh(log)
        return MessageLogRecord.model_validate(log)

    @_guarded
    def list_message_logs(self, booking_id=None, limit=100) -> List[MessageLogRecord]:
        query = self.db.query(MessageLog)
        if booking_id is not None:
            query = query.filter(MessageLog.booking_id == _pk(booking_id))
        logs = query.order_by(MessageLog.sent_at.desc(), MessageLog.id.desc()).limit(limit).all()
        return [MessageLogRecord.model_validate(log) for log in logs]

    # Admin reads
    @_guarded
    def dashboard_stats(self, now: datetime) -> Dict[str, Any]:
        today = _start_of_day(now)
        confirmed = Booking.status == BookingStatus.CONFIRMED.value

        total_bookings = self.db.query(Booking).count()
        total_tickets = self.db.query(func.coalesce(func.sum(Booking.num_tickets), 0)).scalar()
        total_revenue = self.db.query(func.coalesce(func.sum(Booking.final_amount), 0)).filter(confirmed).scalar()
        pending_bookings = self.db.query(Booking).filter(
            Booking.status == BookingStatus.PENDING.value
        ).count()
        today_bookings = self.db.query(Booking).filter(Booking.created_at >= today).count()
        today_revenue = self.db.query(func.coalesce(func.sum(Booking.final_amount), 0)).filter(
            and_(confirmed, Booking.created_at >= today)
        ).scalar()
        total_scans = self.db.query(QRCode).filter(QRCode.is_used.is_(True)).count()
        today_scans = self.db.query(QRCode).filter(
            QRCode.is_used.is_(True), QRCode.used_at >= today
        ).count()
        failed_scans = self.db.query(QRCode).filter(
            QRCode.is_used.is_(False), QRCode.expiry_date < now
        ).count()
        active_staff = self.db.query(func.count(func.distinct(QRCode.used_by))).filter(
            QRCode.is_used.is_(True), QRCode.used_at >= today
        ).scalar()

        return {
            "totalBookings": total_bookings,
            "totalTickets": int(total_tickets or 0),
            "totalRevenue": int(total_revenue or 0),
            "totalScans": total_scans,
            "scannedTickets": total_scans,
            "failedScans": failed_scans,
            "pendingBookings": pending_bookings,
            "todayBookings": today_bookings,
            "todayRevenue": int(today_revenue or 0),
            "todayScans": today_scans,
            "activeStaff": int(active_staff or 0),
        }

    @_guarded
    def recent_scans(self, limit=10) -> List[Dict[str, Any]]:
        rows = self.db.query(QRCode, BookingUser.name).outerjoin(
            BookingUser, QRCode.user_id == BookingUser.id
        ).filter(
            QRCode.is_used.is_(True), QRCode.used_at.isnot(None)
        ).order_by(QRCode.used_at.desc()).limit(limit).all()
        return [
            _scan_entry(QRCodeRecord.model_validate(qr).model_copy(update={"user_name": user_name}))
            for qr, user_name in rows
        ]

    @_guarded
    def chart_data(self, today: date, days: int = CHART_WINDOW_DAYS) -> List[Dict[str, Any]]:
        since = today - timedelta(days=days)
        rows = self.db.query(
            Booking.booking_date,
            func.count(Booking.id),
            func.coalesce(func.sum(Booking.final_amount), 0),
        ).filter(
            Booking.booking_date >= since
        ).group_by(Booking.booking_date).order_by(Booking.booking_date).all()
        return [
            {"date": booking_date.isoformat(), "bookings": count, "revenue": int(revenue or 0)}
            for booking_date, count, revenue in rows
        ]

    @_guarded
    def list_bookings(self, limit=50) -> List[Dict[str, Any]]:
        bookings = self.db.query(Booking).order_by(
            Booking.created_at.desc(), Booking.id.desc()
        ).limit(limit).all()
        summaries = []
        for booking in bookings:
            users = [UserRecord.model_validate(user) for user in sorted(booking.users, key=lambda u: u.id)]
            payments = sorted(booking.payments, key=lambda p: (p.created_at or datetime.min, p.id), reverse=True)
            summaries.append(booking_summary(
                BookingRecord.model_validate(booking),
                users,
                [PaymentRecord.model_validate(payment) for payment in payments],
            ))
        return summaries

    @_guarded
    def list_scans(self, limit=100) -> List[ScanRecord]:
        scans = self.db.query(QRScan).order_by(QRScan.scanned_at.desc(), QRScan.id.desc()).limit(limit).all()
        return [ScanRecord.model_validate(scan) for scan in scans]


# ================================
# In-memory fallback store
# ================================
class InMemoryBookingStore(BookingStore):
    name = "fallback"

    def __init__(self, clock=datetime.now):
        self._clock = clock
        self._lock = threading.RLock()
        # numeric-string ids that sort with creation time
        self._ids = itertools.count(int(time.time() * 1000))
        self.clear(log=False)

    def _next_id(self) -> str:
        return str(next(self._ids))

    def clear(self, log: bool = True) -> None:
        with self._lock:
            self._bookings: Dict[str, BookingRecord] = {}
            self._users: Dict[str, UserRecord] = {}
            self._payments: Dict[str, PaymentRecord] = {}
            self._qr_codes: Dict[str, QRCodeRecord] = {}
            self._scans: Dict[str, ScanRecord] = {}
            self._message_logs: Dict[str, MessageLogRecord] = {}
        if log:
            logger.warning("Fallback store cleared by operator")

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            bookings = [
                booking_summary(booking, self._users_of(booking.id), self._payments_of(booking.id))
                for booking in self._bookings.values()
            ]
            return {
                "bookings": bookings,
                "qr_codes": [qr.to_response() for qr in self._qr_codes.values()],
                "message_logs": [log.to_response() for log in self._message_logs.values()],
                "stats": {
                    "totalBookings": len(self._bookings),
                    "totalUsers": len(self._users),
                    "totalPayments": len(self._payments),
                    "totalQRCodes": len(self._qr_codes),
                    "totalScans": len(self._scans),
                    "totalMessageLogs": len(self._message_logs),
                },
            }

    def _users_of(self, booking_id) -> List[UserRecord]:
        return [u for u in self._users.values() if u.booking_id == str(booking_id)]

    def _payments_of(self, booking_id) -> List[PaymentRecord]:
        payments = [p for p in self._payments.values() if p.booking_id == str(booking_id)]
        return sorted(payments, key=lambda p: (p.created_at, int(p.id)), reverse=True)

    def _with_joins(self, qr: QRCodeRecord) -> QRCodeRecord:
        booking = self._bookings.get(qr.booking_id)
        user = self._users.get(qr.user_id) if qr.user_id else None
        return qr.model_copy(update={
            "pass_type": booking.pass_type if booking else None,
            "user_name": user.name if user else None,
        })

    # Bookings
    def create_booking(self, fields) -> BookingRecord:
        with self._lock:
            now = self._clock()
            booking = BookingRecord(id=self._next_id(), created_at=now, updated_at=now,
                                    is_mock=True, **fields)
            self._bookings[booking.id] = booking
        logger.warning("Stored fallback booking %s", booking.id)
        return booking.model_copy()

    def get_booking(self, booking_id) -> Optional[BookingRecord]:
        with self._lock:
            booking = self._bookings.get(str(booking_id))
            return booking.model_copy() if booking else None

    def update_booking(self, booking_id, **fields) -> Optional[BookingRecord]:
        with self._lock:
            booking = self._bookings.get(str(booking_id))
            if not booking:
                return None
            booking = booking.model_copy(update={**fields, "updated_at": self._clock()})
            self._bookings[booking.id] = booking
            return booking.model_copy()

    def confirm_booking(self, booking_id, **fields) -> Optional[BookingRecord]:
        with self._lock:
            booking = self._bookings.get(str(booking_id))
            if not booking or booking.status != BookingStatus.PENDING.value:
                return None
            return self.update_booking(booking_id, status=BookingStatus.CONFIRMED.value, **fields)

    # Ticket holders
    def add_user(self, booking_id, name, email, phone, is_primary) -> UserRecord:
        with self._lock:
            user = UserRecord(id=self._next_id(), booking_id=booking_id, name=name, email=email,
                              phone=phone, is_primary=is_primary, created_at=self._clock())
            self._users[user.id] = user
        logger.warning("Stored fallback user %s for booking %s", user.id, booking_id)
        return user.model_copy()

    def list_users(self, booking_id) -> List[UserRecord]:
        with self._lock:
            return [user.model_copy() for user in self._users_of(booking_id)]

    def confirmed_contacts(self, event_date=None) -> List[Tuple[BookingRecord, UserRecord]]:
        with self._lock:
            contacts = []
            for booking in sorted(self._bookings.values(), key=lambda b: int(b.id)):
                if booking.status != BookingStatus.CONFIRMED.value:
                    continue
                if event_date is not None and booking.booking_date != event_date:
                    continue
                holder = primary_user(self._users_of(booking.id))
                if holder:
                    contacts.append((booking.model_copy(), holder.model_copy()))
            return contacts

    # Payments
    def create_payment(self, booking_id, provider_order_id, amount, currency) -> PaymentRecord:
        with self._lock:
            now = self._clock()
            payment = PaymentRecord(id=self._next_id(), booking_id=booking_id,
                                    provider_order_id=provider_order_id, amount=amount,
                                    currency=currency, status=PaymentStatus.CREATED.value,
                                    created_at=now, updated_at=now)
            self._payments[payment.id] = payment
        logger.warning("Stored fallback payment %s for booking %s", payment.id, booking_id)
        return payment.model_copy()

    def _find_payment(self, booking_id, provider_order_id) -> Optional[PaymentRecord]:
        for payment in self._payments.values():
            if payment.booking_id == str(booking_id) and payment.provider_order_id == provider_order_id:
                return payment
        return None

    def get_payment(self, booking_id, provider_order_id) -> Optional[PaymentRecord]:
        with self._lock:
            payment = self._find_payment(booking_id, provider_order_id)
            return payment.model_copy() if payment else None

    def capture_payment(self, booking_id, provider_order_id, provider_payment_id) -> Optional[PaymentRecord]:
        with self._lock:
            payment = self._find_payment(booking_id, provider_order_id)
            if not payment or payment.status != PaymentStatus.CREATED.value:
                return None
            payment = payment.model_copy(update={
                "status": PaymentStatus.CAPTURED.value,
                "provider_payment_id": provider_payment_id,
                "updated_at": self._clock(),
            })
            self._payments[payment.id] = payment
            return payment.model_copy()

    def insert_captured_payment(self, booking_id, provider_order_id, provider_payment_id,
                                amount, currency) -> PaymentRecord:
        with self._lock:
            existing = self._find_payment(booking_id, provider_order_id)
            if existing:
                return existing.model_copy()
            now = self._clock()
            payment = PaymentRecord(id=self._next_id(), booking_id=booking_id,
                                    provider_order_id=provider_order_id,
                                    provider_payment_id=provider_payment_id, amount=amount,
                                    currency=currency, status=PaymentStatus.CAPTURED.value,
                                    created_at=now, updated_at=now)
            self._payments[payment.id] = payment
            return payment.model_copy()

    def latest_payment(self, booking_id, status=None) -> Optional[PaymentRecord]:
        with self._lock:
            for payment in self._payments_of(booking_id):
                if status is None or payment.status == status:
                    return payment.model_copy()
            return None

    # QR tickets
    def create_qr_code(self, booking_id, user_id, ticket_number, qr_data, qr_code_url,
                       expiry_date) -> QRCodeRecord:
        with self._lock:
            qr = QRCodeRecord(id=self._next_id(), booking_id=booking_id, user_id=user_id,
                              ticket_number=ticket_number, qr_data=qr_data, qr_code_url=qr_code_url,
                              expiry_date=expiry_date, is_used=False, created_at=self._clock())
            self._qr_codes[qr.ticket_number] = qr
            return qr.model_copy()

    def list_qr_codes(self, booking_id) -> List[QRCodeRecord]:
        with self._lock:
            codes = [qr for qr in self._qr_codes.values() if qr.booking_id == str(booking_id)]
            return [qr.model_copy() for qr in sorted(codes, key=lambda qr: int(qr.id))]

    def get_qr_code(self, ticket_number) -> Optional[QRCodeRecord]:
        with self._lock:
            qr = self._qr_codes.get(ticket_number)
            return self._with_joins(qr) if qr else None

    def mark_qr_used(self, ticket_number, used_by) -> Optional[QRCodeRecord]:
        with self._lock:
            qr = self._qr_codes.get(ticket_number)
            if not qr or qr.is_used:
                return None
            qr = qr.model_copy(update={"is_used": True, "used_at": self._clock(), "used_by": used_by})
            self._qr_codes[ticket_number] = qr
            return self._with_joins(qr)

    def record_offline_admission(self, ticket_number, used_by) -> Optional[QRCodeRecord]:
        """Keep a ticket admitted while unknown to both stores as used; None if it is already held here."""
        with self._lock:
            if ticket_number in self._qr_codes:
                return None
            now = self._clock()
            qr = QRCodeRecord(id=self._next_id(), ticket_number=ticket_number, qr_data=ticket_number,
                              is_used=True, used_at=now, used_by=used_by, created_at=now)
            self._qr_codes[ticket_number] = qr
            return qr.model_copy()

    def record_scan(self, ticket_number, booking_id, result, staff_id, staff_name) -> ScanRecord:
        with self._lock:
            scan = ScanRecord(id=self._next_id(), booking_id=booking_id, ticket_number=ticket_number,
                              result=result, staff_id=staff_id, staff_name=staff_name,
                              scanned_at=self._clock())
            self._scans[scan.id] = scan
            return scan.model_copy()

    # Audit trail
    def add_message_log(self, booking_id, user_id, channel, provider, status,
                        cost_amount=0, error_message=None) -> MessageLogRecord:
        with self._lock:
            log = MessageLogRecord(id=self._next_id(), booking_id=booking_id, user_id=user_id,
                                   channel=channel, provider=provider, status=status,
                                   cost_amount=cost_amount,
                                   error_message=(error_message or None) and error_message[:255],
                                   sent_at=self._clock())
            self._message_logs[log.id] = log
            return log.model_copy()

    def list_message_logs(self, booking_id=None, limit=100) -> List[MessageLogRecord]:
        with self._lock:
            logs = [
                log for log in self._message_logs.values()
                if booking_id is None or log.booking_id == str(booking_id)
            ]
            logs.sort(key=lambda log: (log.sent_at, int(log.id)), reverse=True)
            return [log.model_copy() for log in logs[:limit]]

    # Admin reads
    def dashboard_stats(self, now: datetime) -> Dict[str, Any]:
        today = _start_of_day(now)
        with self._lock:
            bookings = list(self._bookings.values())
            codes = list(self._qr_codes.values())

        confirmed = [b for b in bookings if b.status == BookingStatus.CONFIRMED.value]
        created_today = [b for b in bookings if b.created_at and b.created_at >= today]
        used = [qr for qr in codes if qr.is_used]
        used_today = [qr for qr in used if qr.used_at and qr.used_at >= today]

        return {
            "totalBookings": len(bookings),
            "totalTickets": sum(b.num_tickets for b in bookings),
            "totalRevenue": sum(b.final_amount for b in confirmed),
            "totalScans": len(used),
            "scannedTickets": len(used),
            "failedScans": len([qr for qr in codes if not qr.is_used and qr.expiry_date and qr.expiry_date < now]),
            "pendingBookings": len([b for b in bookings if b.status == BookingStatus.PENDING.value]),
            "todayBookings": len(created_today),
            "todayRevenue": sum(b.final_amount for b in created_today if b.status == BookingStatus.CONFIRMED.value),
            "todayScans": len(used_today),
            "activeStaff": len({qr.used_by for qr in used_today if qr.used_by}),
        }

    def recent_scans(self, limit=10) -> List[Dict[str, Any]]:
        with self._lock:
            used = [self._with_joins(qr) for qr in self._qr_codes.values() if qr.is_used and qr.used_at]
        used.sort(key=lambda qr: qr.used_at, reverse=True)
        return [_scan_entry(qr) for qr in used[:limit]]

    def chart_data(self, today: date, days: int = CHART_WINDOW_DAYS) -> List[Dict[str, Any]]:
        since = today - timedelta(days=days)
        buckets: Dict[date, Dict[str, int]] = {}
        with self._lock:
            for booking in self._bookings.values():
                if booking.booking_date < since:
                    continue
                bucket = buckets.setdefault(booking.booking_date, {"bookings": 0, "revenue": 0})
                bucket["bookings"] += 1
                bucket["revenue"] += booking.final_amount
        return [
            {"date": day.isoformat(), **bucket}
            for day, bucket in sorted(buckets.items())
        ]

    def list_bookings(self, limit=50) -> List[Dict[str, Any]]:
        with self._lock:
            bookings = sorted(self._bookings.values(), key=lambda b: (b.created_at, int(b.id)), reverse=True)
            return [
                booking_summary(booking, self._users_of(booking.id), self._payments_of(booking.id))
                for booking in bookings[:limit]
            ]

    def list_scans(self, limit=100) -> List[ScanRecord]:
        with self._lock:
            scans = sorted(self._scans.values(), key=lambda s: (s.scanned_at, int(s.id)), reverse=True)
            return [scan.model_copy() for scan in scans[:limit]]
