from datetime import date

from src.admin.service import AdminService
from src.auth.utils import create_access_token
from tests.helpers import admin_token, auth_header, confirm_booking, create_booking, event_date


class TestDashboard:
    def test_stats_after_confirmed_booking(self, client):
        _, body = confirm_booking(client, num_tickets=3)
        create_booking(client, num_tickets=2)
        client.post("/api/qr/mark-used", json={"qr_code": body["qrCodes"][0]["ticket_number"], "staff_id": "s-1"})

        response = client.get("/api/admin/dashboard/stats")
        assert response.status_code == 200
        stats = response.json()["data"]
        assert stats["totalBookings"] == 2
        assert stats["totalTickets"] == 5
        assert stats["totalRevenue"] == 1197
        assert stats["pendingBookings"] == 1
        assert stats["totalScans"] == 1
        assert stats["activeStaff"] == 1
        assert response.json()["mock"] is False

    def test_recent_scans(self, client):
        _, body = confirm_booking(client)
        ticket_number = body["qrCodes"][1]["ticket_number"]
        client.post("/api/qr/mark-used", json={"qr_code": ticket_number, "staff_id": "s-1"})

        scans = client.get("/api/admin/dashboard/recent-scans", params={"limit": 5}).json()["data"]
        assert [scan["ticket_number"] for scan in scans] == [ticket_number]
        assert scans[0]["used_by"] == "s-1"

    def test_chart_data(self, client):
        confirm_booking(client)
        chart = client.get("/api/admin/dashboard/chart-data").json()["data"]
        assert chart == [{"date": event_date().isoformat(), "bookings": 1, "revenue": 1197}]


class TestListings:
    def test_bookings(self, client):
        booking_id, _ = confirm_booking(client)
        bookings = client.get("/api/admin/bookings").json()["data"]
        assert bookings[0]["id"] == booking_id
        assert bookings[0]["full_name"] == "Asha Patil"
        assert bookings[0]["payment_status"] == "captured"

    def test_outage_booking_visible_in_listing(self, outage_client):
        created = create_booking(outage_client)
        assert created["mock"] is True
        booking_id = created["booking"]["id"]
        assert booking_id.isdigit()

        body = outage_client.get("/api/admin/bookings").json()
        assert body["mock"] is True
        assert [b["id"] for b in body["data"]] == [booking_id]
        assert body["message"] == "Database unavailable - showing 1 offline bookings"

    def test_dashboard_during_outage(self, outage_client):
        create_booking(outage_client, num_tickets=4)
        body = outage_client.get("/api/admin/dashboard/stats").json()
        assert body["mock"] is True
        assert body["data"]["totalTickets"] == 4
        assert "message" in body

    def test_offline_bookings_merged_when_healthy(self, memory_selector, test_settings):
        memory_selector.primary.create_booking({
            "booking_date": date(2025, 10, 2), "num_tickets": 1, "pass_type": "female",
        })
        memory_selector.fallback.create_booking({
            "booking_date": date(2025, 10, 2), "num_tickets": 2, "pass_type": "couple",
        })
        bookings, mock, _ = AdminService(memory_selector, test_settings).list_bookings(10)
        assert mock is False
        assert sorted(b["num_tickets"] for b in bookings) == [1, 2]


class TestConfigStatus:
    def test_config_status(self, client):
        data = client.get("/api/admin/config/status").json()["data"]
        assert data["database"]["connected"] is True
        assert data["database"]["mode"] == "normal"
        assert data["payments"] == {"provider": "fake", "configured": True, "signature_verification": False}
        assert data["email"]["provider"] == "fake"
        assert data["whatsapp"]["configured"] is True


class TestFallbackStore:
    def test_requires_token(self, client):
        response = client.get("/api/admin/fallback")
        assert response.status_code == 401
        assert response.json()["success"] is False

    def test_requires_admin_role(self, client):
        token = create_access_token({"sub": "7", "email": "gate@example.com", "role": "staff"})
        response = client.get("/api/admin/fallback", headers=auth_header(token))
        assert response.status_code == 403

    def test_snapshot_and_clear(self, outage_client):
        create_booking(outage_client)
        token = admin_token(outage_client)

        snapshot = outage_client.get("/api/admin/fallback", headers=auth_header(token)).json()["data"]
        assert snapshot["stats"]["totalBookings"] == 1

        cleared = outage_client.delete("/api/admin/fallback", headers=auth_header(token)).json()
        assert cleared["cleared"]["totalBookings"] == 1
        after = outage_client.get("/api/admin/fallback", headers=auth_header(token)).json()["data"]
        assert after["stats"]["totalBookings"] == 0


class TestNotificationCampaigns:
    def test_require_admin(self, client):
        assert client.post("/api/admin/notifications/reminders", json={}).status_code == 401
        token = create_access_token({"sub": "7", "email": "gate@example.com", "role": "staff"})
        response = client.post("/api/admin/notifications/announcement", json={"message": "Hello"},
                               headers=auth_header(token))
        assert response.status_code == 403

    def test_reminders_log_one_row_per_recipient(self, client, whatsapp_service):
        first_id, _ = confirm_booking(client)
        second_id, _ = confirm_booking(client)
        create_booking(client)
        token = admin_token(client)
        whatsapp_service.sent.clear()

        response = client.post("/api/admin/notifications/reminders", json={}, headers=auth_header(token))

        assert response.status_code == 200
        data = response.json()["data"]
        assert (data["total"], data["sent"], data["failed"]) == (2, 2, 0)
        assert [result["booking_id"] for result in data["results"]] == [first_id, second_id]
        assert all("Event Reminder" in message["body"] for message in whatsapp_service.sent)
        for booking_id in (first_id, second_id):
            logs = client.get("/api/admin/message-logs", params={"booking_id": booking_id}).json()["data"]
            assert sorted(log["channel"] for log in logs) == ["email", "whatsapp", "whatsapp"]

    def test_reminders_for_other_date_send_nothing(self, client, whatsapp_service):
        confirm_booking(client)
        token = admin_token(client)
        whatsapp_service.sent.clear()

        response = client.post("/api/admin/notifications/reminders",
                               json={"event_date": date(2030, 1, 1).isoformat()}, headers=auth_header(token))
        assert response.json()["data"]["total"] == 0
        assert whatsapp_service.sent == []

    def test_announcement_to_given_numbers(self, client, whatsapp_service):
        token = admin_token(client)
        whatsapp_service.fail_numbers = {"9876500002"}

        response = client.post("/api/admin/notifications/announcement", json={
            "message": "Gates open at 7pm",
            "phone_numbers": ["9876500001", "9876500002", "9876500003"],
        }, headers=auth_header(token))

        data = response.json()["data"]
        assert (data["total"], data["sent"], data["failed"]) == (3, 2, 1)
        assert [result["status"] for result in data["results"]] == ["sent", "failed", "sent"]
        assert [message["phone"] for message in whatsapp_service.sent] == ["9876500001", "9876500003"]
        logs = client.get("/api/admin/message-logs").json()["data"]
        assert sorted(log["status"] for log in logs) == ["failed", "sent", "sent"]
        assert all(log["booking_id"] is None for log in logs)

    def test_announcement_defaults_to_confirmed_holders(self, client, whatsapp_service):
        booking_id, _ = confirm_booking(client)
        token = admin_token(client)
        whatsapp_service.sent.clear()

        data = client.post("/api/admin/notifications/announcement", json={"message": "Parking is full"},
                           headers=auth_header(token)).json()["data"]
        assert data["total"] == 1
        assert data["results"][0]["booking_id"] == booking_id
        assert whatsapp_service.sent[0]["body"] == "Parking is full"

    def test_empty_announcement_rejected(self, client):
        token = admin_token(client)
        response = client.post("/api/admin/notifications/announcement", json={"message": ""},
                               headers=auth_header(token))
        assert response.status_code == 400

    def test_reminders_while_database_down(self, outage_client, whatsapp_service):
        booking_id, _ = confirm_booking(outage_client, num_tickets=1)
        token = admin_token(outage_client)
        whatsapp_service.sent.clear()

        body = outage_client.post("/api/admin/notifications/reminders", json={},
                                  headers=auth_header(token)).json()
        assert body["mock"] is True
        assert body["data"]["results"][0]["booking_id"] == booking_id
        assert len(whatsapp_service.sent) == 1

    def test_message_status(self, client):
        token = admin_token(client)
        sent = client.post("/api/admin/config/test-whatsapp", json={"phone_number": "9876543210"},
                           headers=auth_header(token)).json()
        message_id = sent["result"]["message_id"]

        response = client.get(f"/api/admin/notifications/whatsapp/{message_id}", headers=auth_header(token))
        assert response.json()["data"]["status"] == "delivered"
        missing = client.get("/api/admin/notifications/whatsapp/SM404", headers=auth_header(token))
        assert missing.status_code == 404


class TestConfigTools:
    def test_send_test_whatsapp(self, client, whatsapp_service):
        token = admin_token(client)
        response = client.post("/api/admin/config/test-whatsapp",
                               json={"phone_number": "9876543210", "message": "ping"},
                               headers=auth_header(token))

        body = response.json()
        assert body["success"] is True
        assert body["result"]["status"] == "sent"
        assert "timestamp" in body
        assert whatsapp_service.sent[-1] == {"phone": "9876543210", "body": "ping", "media_url": None}

    def test_send_test_whatsapp_requires_admin(self, client):
        response = client.post("/api/admin/config/test-whatsapp", json={"phone_number": "9876543210"})
        assert response.status_code == 401

    def test_render_test_pdf(self, client):
        token = admin_token(client)
        response = client.post("/api/admin/config/test-pdf", headers=auth_header(token))
        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.content.startswith(b"%PDF")
