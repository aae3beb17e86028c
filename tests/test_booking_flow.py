from tests.helpers import add_primary_user, confirm_booking, create_booking


class TestBookingRoutes:
    def test_create_booking(self, client):
        body = create_booking(client, pass_type="female", num_tickets=3)
        booking = body["booking"]
        assert body["success"] is True
        assert body["mock"] is False
        assert booking["status"] == "pending"
        assert booking["final_amount"] == 1197
        assert "_isMockBooking" not in booking

    def test_create_booking_requires_positive_quantity(self, client):
        response = client.post("/api/bookings/create", json={
            "booking_date": "2025-10-02", "num_tickets": 0, "pass_type": "female",
        })
        assert response.status_code == 400
        assert response.json()["details"][0]["field"] == "num_tickets"

    def test_add_user_to_unknown_booking(self, client):
        response = client.post("/api/bookings/add-users", json={"booking_id": "999", "name": "Nobody"})
        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "Booking not found", "message": "Booking not found"}

    def test_second_primary_user_rejected(self, client):
        booking_id = create_booking(client)["booking"]["id"]
        add_primary_user(client, booking_id)
        response = client.post("/api/bookings/add-users", json={
            "booking_id": booking_id, "name": "Other", "is_primary": True,
        })
        assert response.status_code == 409

    def test_numeric_booking_id_accepted(self, client):
        booking_id = create_booking(client)["booking"]["id"]
        response = client.post("/api/bookings/add-users", json={"booking_id": int(booking_id), "name": "Guest"})
        assert response.status_code == 201
        assert response.json()["user"]["booking_id"] == booking_id

    def test_create_payment_uses_server_price(self, client, payment_provider):
        booking_id = create_booking(client, pass_type="kids", num_tickets=2)["booking"]["id"]
        response = client.post("/api/bookings/create-payment", json={"booking_id": booking_id})
        assert response.status_code == 200
        body = response.json()
        assert body["order"]["amount"] == 19800
        assert body["payment"]["amount"] == 198
        assert body["payment"]["status"] == "created"

    def test_create_payment_unknown_booking(self, client):
        response = client.post("/api/bookings/create-payment", json={"booking_id": "424242"})
        assert response.status_code == 404


class TestConfirmPayment:
    def test_three_tickets_issued_and_sent(self, client, email_service, whatsapp_service):
        booking_id, body = confirm_booking(client, num_tickets=3)

        assert body["booking"]["status"] == "confirmed"
        assert body["payment"]["status"] == "captured"
        tickets = body["qrCodes"]
        assert len(tickets) == 3
        assert len({t["ticket_number"] for t in tickets}) == 3
        assert not any(t["is_used"] for t in tickets)
        assert body["notifications"]["email"]["status"] == "sent"
        assert body["notifications"]["whatsapp"]["status"] == "sent"
        assert len(email_service.sent[0]["attachments"]) == 3
        assert whatsapp_service.sent[0]["phone"] == "9876543210"

    def test_repeat_confirmation_returns_same_tickets(self, client, email_service):
        booking_id, first = confirm_booking(client, num_tickets=2)
        response = client.post("/api/bookings/confirm-payment", json={
            "booking_id": booking_id,
            "provider_order_id": first["payment"]["provider_order_id"],
            "provider_payment_id": "pay_test_1",
        })
        assert response.status_code == 200
        second = response.json()
        assert [t["ticket_number"] for t in second["qrCodes"]] == [t["ticket_number"] for t in first["qrCodes"]]
        assert second["notifications"]["skipped"] is True
        assert len(email_service.sent) == 1

    def test_message_logs_written(self, client):
        booking_id, _ = confirm_booking(client)
        logs = client.get("/api/admin/message-logs", params={"booking_id": booking_id}).json()["data"]
        assert sorted(log["channel"] for log in logs) == ["email", "whatsapp"]
        assert all(log["status"] == "sent" for log in logs)

    def test_resend_notifications(self, client, email_service):
        booking_id, _ = confirm_booking(client)
        response = client.post("/api/bookings/resend-notifications", json={"booking_id": booking_id})
        assert response.status_code == 200
        assert response.json()["notifications"]["success"] is True
        assert len(email_service.sent) == 2

    def test_resend_for_pending_booking(self, client):
        booking_id = create_booking(client)["booking"]["id"]
        response = client.post("/api/bookings/resend-notifications", json={"booking_id": booking_id})
        assert response.status_code == 404


class TestTickets:
    def test_qr_details(self, client):
        _, body = confirm_booking(client)
        ticket_number = body["qrCodes"][0]["ticket_number"]
        response = client.post("/api/bookings/qr-details", json={"ticket_number": ticket_number})
        assert response.status_code == 200
        ticket = response.json()["ticket"]
        assert ticket["pass_type"] == "female"
        assert ticket["user_name"] == "Asha Patil"

    def test_mark_used_once(self, client):
        _, body = confirm_booking(client)
        ticket_number = body["qrCodes"][0]["ticket_number"]

        first = client.post("/api/bookings/mark-used", json={"ticket_number": ticket_number, "used_by": "gate-1"})
        assert first.status_code == 200
        assert first.json()["used_by"] == "gate-1"

        second = client.post("/api/bookings/mark-used", json={"ticket_number": ticket_number, "used_by": "gate-2"})
        assert second.status_code == 400
        error = second.json()
        assert error["error"] == "Ticket already used"
        assert error["details"]["used_by"] == "gate-1"

    def test_mark_unknown_ticket(self, client):
        response = client.post("/api/bookings/mark-used", json={"ticket_number": "nope"})
        assert response.status_code == 404

    def test_ticket_pdf(self, client):
        _, body = confirm_booking(client)
        ticket_number = body["qrCodes"][0]["ticket_number"]
        response = client.get(f"/api/bookings/tickets/{ticket_number}/pdf")
        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.content.startswith(b"%PDF")


class TestOutage:
    def test_booking_flow_while_database_down(self, outage_client, email_service):
        created = create_booking(outage_client, num_tickets=2)
        booking = created["booking"]
        assert created["mock"] is True
        assert booking["id"].isdigit()
        assert booking["_isMockBooking"] is True

        user = add_primary_user(outage_client, booking["id"])
        assert user["mock"] is True

        order = outage_client.post("/api/bookings/create-payment", json={"booking_id": booking["id"]}).json()
        assert order["mock"] is True

        response = outage_client.post("/api/bookings/confirm-payment", json={
            "booking_id": booking["id"],
            "provider_order_id": order["order"]["id"],
            "provider_payment_id": "pay_offline",
        })
        assert response.status_code == 200
        body = response.json()
        assert body["mock"] is True
        assert body["booking"]["status"] == "confirmed"
        assert len(body["qrCodes"]) == 2
        assert len(email_service.sent) == 1

    def test_unknown_ticket_admitted_while_database_down(self, outage_client):
        response = outage_client.post("/api/bookings/mark-used", json={"ticket_number": "paper-ticket-1"})
        assert response.status_code == 200
        assert response.json()["mock"] is True

    def test_unknown_ticket_admitted_only_once_while_database_down(self, outage_client):
        first = outage_client.post("/api/bookings/mark-used",
                                   json={"ticket_number": "paper-ticket-2", "used_by": "gate-1"})
        second = outage_client.post("/api/bookings/mark-used",
                                    json={"ticket_number": "paper-ticket-2", "used_by": "gate-2"})
        assert first.status_code == 200
        assert first.json()["ticket"]["is_used"] is True
        assert second.status_code == 400
        assert second.json()["details"]["used_by"] == "gate-1"

        gate = outage_client.post("/api/qr/mark-used", json={"qr_code": "paper-ticket-2", "staff_id": "gate-3"})
        assert gate.status_code == 400

    def test_fallback_ticket_used_once(self, outage_client):
        booking_id, body = confirm_booking(outage_client, num_tickets=1)
        ticket_number = body["qrCodes"][0]["ticket_number"]
        first = outage_client.post("/api/bookings/mark-used", json={"ticket_number": ticket_number})
        second = outage_client.post("/api/bookings/mark-used", json={"ticket_number": ticket_number})
        assert first.status_code == 200
        assert second.status_code == 400
