import json
from datetime import date, datetime, timedelta

import pytest

from src.bookings import ticket_service
from src.bookings.ticket_service import (
    TicketService, decode_payload, encode_payload, extract_ticket_code, generate_qr_data_url,
    generate_ticket_number, placeholder_qr_url
)
from src.exceptions import InvalidRequestError
from tests.helpers import FakeClock


def confirmed_booking(store, num_tickets=3):
    return store.create_booking({
        "booking_date": date(2025, 10, 2),
        "num_tickets": num_tickets,
        "pass_type": "female",
        "status": "confirmed",
    })


class TestPayload:
    def test_payload_carries_ticket_fields(self):
        data = encode_payload("T-1", 42, "couple", date(2025, 10, 2))
        assert json.loads(data) == {
            "ticketNumber": "T-1",
            "bookingId": "42",
            "passType": "couple",
            "eventDate": "2025-10-02",
        }
        assert decode_payload(data)["ticketNumber"] == "T-1"

    @pytest.mark.parametrize("data", ["not json", "[1, 2]", '{"bookingId": "1"}'])
    def test_decode_rejects_bad_payloads(self, data):
        with pytest.raises(InvalidRequestError):
            decode_payload(data)

    def test_extract_ticket_code(self):
        assert extract_ticket_code('{"ticketNumber": "T-9"}') == "T-9"
        assert extract_ticket_code("  T-9 ") == "T-9"
        with pytest.raises(InvalidRequestError):
            extract_ticket_code("   ")

    def test_ticket_numbers_are_unique(self):
        assert len({generate_ticket_number() for _ in range(50)}) == 50

    def test_qr_data_url(self):
        assert generate_qr_data_url("T-1").startswith("data:image/png;base64,")


class TestTicketService:
    def test_issues_one_unused_ticket_per_seat(self, memory_selector):
        clock = FakeClock(datetime(2025, 9, 1, 12, 0))
        service = TicketService(memory_selector, expiry_days=30, clock=clock)
        store = memory_selector.primary
        booking = confirmed_booking(store)
        holder = store.add_user(booking.id, "Holder", "holder@example.com", None, True)

        codes, mock = service.issue_tickets(store, booking, store.list_users(booking.id))

        assert mock is False
        assert len(codes) == 3
        assert len({qr.ticket_number for qr in codes}) == 3
        assert all(not qr.is_used for qr in codes)
        assert all(qr.user_id == holder.id for qr in codes)
        assert all(qr.expiry_date == datetime(2025, 10, 1, 12, 0) for qr in codes)
        assert decode_payload(codes[0].qr_data)["bookingId"] == booking.id
        assert codes[0].qr_code_url.startswith("data:image/png")

    def test_existing_tickets_are_not_reissued(self, memory_selector):
        service = TicketService(memory_selector)
        store = memory_selector.primary
        booking = confirmed_booking(store, num_tickets=2)

        first, _ = service.issue_tickets(store, booking, [])
        second, _ = service.issue_tickets(store, booking, [])
        assert [qr.ticket_number for qr in second] == [qr.ticket_number for qr in first]
        assert len(store.list_qr_codes(booking.id)) == 2

    def test_tickets_without_holder(self, memory_selector):
        service = TicketService(memory_selector)
        booking = confirmed_booking(memory_selector.primary, num_tickets=1)
        codes, _ = service.issue_tickets(memory_selector.primary, booking, [])
        assert codes[0].user_id is None

    def test_render_failure_uses_placeholder(self, memory_selector, monkeypatch):
        def broken(data):
            raise OSError("no encoder")

        monkeypatch.setattr(ticket_service, "generate_qr_data_url", broken)
        service = TicketService(memory_selector)
        assert service.render_qr_image("{}", "T-1") == placeholder_qr_url("T-1")

    def test_fallback_issuance_is_mock(self, memory_selector):
        service = TicketService(memory_selector, clock=FakeClock())
        store = memory_selector.fallback
        booking = confirmed_booking(store, num_tickets=1)
        codes, mock = service.issue_tickets(store, booking, [])
        assert mock is True
        assert service.get_tickets(store, booking.id)[0][0].ticket_number == codes[0].ticket_number

    def test_expiry_window(self, memory_selector):
        clock = FakeClock(datetime(2025, 9, 1))
        service = TicketService(memory_selector, expiry_days=5, clock=clock)
        booking = confirmed_booking(memory_selector.primary, num_tickets=1)
        codes, _ = service.issue_tickets(memory_selector.primary, booking, [])
        assert codes[0].expiry_date - clock.now == timedelta(days=5)
