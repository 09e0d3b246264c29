"""Test the HTTP surface with FastAPI's TestClient."""
import json
from datetime import date, timedelta
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from agenda import models
from agenda.database import SessionLocal
from agenda.main import app
from agenda.slots import local_today

from conftest import ADMIN_EMAIL


@pytest.fixture
def client(services):
    """Create FastAPI test client (without startup hooks)."""
    return TestClient(app)


@pytest.fixture
def signup(client):
    def _signup(email, name="Paciente", password="secreto1"):
        response = client.post("/auth/signup", json={
            "email": email, "password": password, "confirm_password": password, "name": name,
        })
        assert response.status_code == 201, response.text
        return {"X-Session-Token": response.json()["token"]}
    return _signup


@pytest.fixture
def admin_headers(signup):
    return signup(ADMIN_EMAIL, name="Admin")


def future_day(days=3):
    return (local_today() + timedelta(days=days)).isoformat()


def booking_payload(day, time="10:00", **overrides):
    payload = {
        "service_id": "general",
        "booking_date": day,
        "booking_time": time,
        "name": "Suzuki Ichiro",
        "phone": "090-1234-5678",
        "notes": "",
    }
    payload.update(overrides)
    return payload


class TestPublicEndpoints:
    """Catalogue and availability need no session."""

    def test_root(self, client):
        assert client.get("/").json()["ok"] is True

    def test_services(self, client):
        response = client.get("/services")
        assert response.status_code == 200
        assert {s["id"] for s in response.json()} == {"general", "sports", "massage", "acupuncture"}

    def test_slots(self, client):
        response = client.get("/slots", params={"date": "2025-08-01"})
        data = response.json()
        assert len(data["slots"]) == 16
        assert data["available"] == data["slots"]

    def test_slots_bad_date(self, client):
        response = client.get("/slots", params={"date": "mañana"})
        assert response.status_code == 422
        assert response.json()["error"] == "validation"

    def test_admin_ping(self, client):
        assert client.get("/admin/ping").json()["ok"] is True


class TestAuthEndpoints:
    """Test sign up, sign in and sign out over HTTP."""

    def test_signup_and_me(self, client, signup):
        headers = signup("hanako@example.com", name="Hanako")
        me = client.get("/auth/me", headers=headers).json()
        assert me["email"] == "hanako@example.com"
        assert me["is_admin"] is False

    def test_admin_flag(self, client, admin_headers):
        assert client.get("/auth/me", headers=admin_headers).json()["is_admin"] is True

    def test_signup_password_mismatch(self, client):
        response = client.post("/auth/signup", json={
            "email": "a@example.com", "password": "secreto1", "confirm_password": "secreto2", "name": "A",
        })
        assert response.status_code == 422
        assert response.json()["detail"] == "Las contraseñas no coinciden."

    def test_signin_and_signout(self, client, signup):
        signup("a@example.com")
        response = client.post("/auth/signin", json={"email": "a@example.com", "password": "secreto1"})
        assert response.status_code == 200
        headers = {"X-Session-Token": response.json()["token"]}
        assert client.post("/auth/signout", headers=headers).json()["ok"] is True
        assert client.get("/auth/me", headers=headers).status_code == 401

    def test_bad_signin(self, client, signup):
        signup("a@example.com")
        response = client.post("/auth/signin", json={"email": "a@example.com", "password": "x"})
        assert response.status_code == 401

    def test_password_reset_does_not_reveal_accounts(self, client):
        response = client.post("/auth/password-reset", json={"email": "nadie@example.com"})
        assert response.status_code == 200
        assert response.json()["ok"] is True


class TestBookingEndpoints:
    """Test the booking form over HTTP."""

    def test_form_check_reports_stage(self, client):
        response = client.post("/bookings/form/check", json={"service_id": "general"})
        data = response.json()
        assert data["stage"] == "datetime"
        assert data["authenticated"] is False
        assert data["can_submit"] is False

    def test_form_check_stops_at_first_invalid_stage(self, client):
        response = client.post("/bookings/form/check", json=booking_payload("2020-01-01"))
        data = response.json()
        assert data["stage"] == "datetime"
        assert data["errors"] == ["No se pueden reservar fechas pasadas."]

    def test_booking_requires_sign_in(self, client):
        response = client.post("/bookings", json=booking_payload(future_day(), email="guest@example.com"))
        assert response.status_code == 401
        assert response.json()["error"] == "sign_in_required"

    def test_book_and_list_mine(self, client, signup):
        headers = signup("ichiro@example.com")
        day = future_day()
        response = client.post("/bookings", json=booking_payload(day), headers=headers)
        assert response.status_code == 201, response.text
        booking = response.json()["booking"]
        assert booking["status"] == "pending"
        assert booking["email"] == "ichiro@example.com"

        mine = client.get("/bookings/me", headers=headers).json()
        assert mine["count"] == 1
        assert mine["bookings"][0]["booking_time"] == "10:00"

        slots = client.get("/slots", params={"date": day}).json()
        assert "10:00" not in slots["available"]

    def test_second_patient_gets_conflict(self, client, signup, admin_headers):
        day = future_day()
        a = signup("a@example.com")
        b = signup("b@example.com")
        assert client.post("/bookings", json=booking_payload(day), headers=a).status_code == 201

        response = client.post("/bookings", json=booking_payload(day, service_id="sports"), headers=b)
        assert response.status_code == 409
        assert response.json()["error"] == "slot_taken"

        listing = client.get("/admin/bookings", params={"date": day}, headers=admin_headers).json()
        assert listing["count"] == 1

    def test_retry_with_request_key(self, client, signup):
        headers = signup("a@example.com")
        payload = booking_payload(future_day(), request_key=str(uuid4()))
        first = client.post("/bookings", json=payload, headers=headers).json()["booking"]
        second = client.post("/bookings", json=payload, headers=headers).json()["booking"]
        assert first["booking_id"] == second["booking_id"]
        assert client.get("/bookings/me", headers=headers).json()["count"] == 1

    def test_profile(self, client, signup):
        headers = signup("a@example.com", name="Aiko")
        assert client.get("/profile", headers=headers).json()["name"] == "Aiko"
        updated = client.patch("/profile", json={"phone": "080-0000-0000"}, headers=headers).json()
        assert updated["phone"] == "080-0000-0000"
        assert updated["name"] == "Aiko"


class TestAdminEndpoints:
    """Admin routes are gated by the allow-list."""

    def test_requires_session(self, client):
        assert client.get("/admin/bookings").status_code == 401

    def test_rejects_non_admin(self, client, signup):
        response = client.get("/admin/bookings", headers=signup("a@example.com"))
        assert response.status_code == 403
        assert response.json()["error"] == "authorization"

    def _book(self, client, signup, day, time="10:00", email="p@example.com"):
        headers = signup(email)
        response = client.post("/bookings", json=booking_payload(day, time), headers=headers)
        return response.json()["booking"]["booking_id"]

    def test_list_filter_and_stats(self, client, signup, admin_headers):
        day = future_day()
        self._book(client, signup, day)
        listing = client.get("/admin/bookings", params={"search": "suzuki", "status": "pending"},
                             headers=admin_headers).json()
        assert listing["count"] == 1
        stats = client.get("/admin/bookings/stats", headers=admin_headers).json()["stats"]
        assert stats["pending"] == 1

    def test_invalid_status_filter(self, client, admin_headers):
        response = client.get("/admin/bookings", params={"status": "archivada"}, headers=admin_headers)
        assert response.status_code == 422

    def test_status_details_and_delete(self, client, signup, admin_headers):
        booking_id = self._book(client, signup, future_day())

        response = client.patch(f"/admin/bookings/{booking_id}/status", json={"status": "confirmed"},
                                headers=admin_headers)
        assert response.json()["booking"]["status"] == "confirmed"

        response = client.patch(f"/admin/bookings/{booking_id}", json={"chart_number": "C-9"},
                                headers=admin_headers)
        assert response.json()["booking"]["chart_number"] == "C-9"

        assert client.delete(f"/admin/bookings/{booking_id}", headers=admin_headers).status_code == 200
        assert client.delete(f"/admin/bookings/{booking_id}", headers=admin_headers).status_code == 404

    def test_calendar(self, client, signup, admin_headers):
        day = future_day()
        booking_id = self._book(client, signup, day, "14:00")
        calendar = client.get("/admin/calendar", params={"week": day}, headers=admin_headers).json()["calendar"]
        assert len(calendar["days"]) == 7
        cells = {
            (d["date"], c["time"]): c["booking"]
            for d in calendar["days"]
            for c in d["cells"]
        }
        assert cells[(day, "14:00")]["id"] == booking_id

    def test_move_and_conflict(self, client, signup, admin_headers):
        day = future_day()
        first = self._book(client, signup, day, "10:00", email="a@example.com")
        self._book(client, signup, day, "10:30", email="b@example.com")

        response = client.post("/admin/calendar/move", json={
            "booking_id": first, "booking_date": day, "booking_time": "10:30",
        }, headers=admin_headers)
        assert response.status_code == 409
        assert response.json()["result"]["outcome"] == "conflict"

        response = client.post("/admin/calendar/move", json={
            "booking_id": first, "booking_date": day, "booking_time": "11:00",
        }, headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["result"]["outcome"] == "moved"

    def test_drop_by_pointer(self, client, signup, admin_headers):
        week = "2025-07-28"
        # Semana pasada: el admin puede mover reservas existentes sin restricción de fecha
        admin_day = "2025-08-01"
        headers = signup("p@example.com")
        me = client.get("/auth/me", headers=headers).json()
        with SessionLocal() as session:
            session.add(models.Booking(id=1001, user_id=me["id"], service_id="general",
                                       booking_date=date.fromisoformat(admin_day), booking_time="10:00",
                                       status=models.BookingStatus.confirmed))
            session.commit()

        # Viernes = fila 4; 10:00 = columna 2; 10:30 = columna 3 (celdas de 50x80)
        response = client.post("/admin/calendar/drop", json={
            "booking_id": 1001, "week": week,
            "start_x": 245, "start_y": 420, "x": 295, "y": 420, "width": 920,
        }, headers=admin_headers)
        assert response.status_code == 200, response.text
        body = response.json()
        assert body["result"]["outcome"] == "moved"
        assert body["result"]["booking_time"] == "10:30"

    @pytest.mark.parametrize("field,value", [("x", "NaN"), ("y", "Infinity"), ("width", "-Infinity")])
    def test_drop_rejects_non_finite_geometry(self, client, admin_headers, field, value):
        payload = {"booking_id": 1001, "week": "2025-07-28",
                   "start_x": 245, "start_y": 420, "x": 295, "y": 420, "width": 920}
        body = json.dumps(payload).replace(f'"{field}": {payload[field]}', f'"{field}": {value}')
        response = client.post("/admin/calendar/drop", content=body,
                               headers={**admin_headers, "Content-Type": "application/json"})
        assert response.status_code == 422

    def test_drop_rejects_zero_width(self, client, admin_headers):
        response = client.post("/admin/calendar/drop", json={
            "booking_id": 1001, "start_x": 0, "start_y": 0, "x": 0, "y": 0, "width": 0,
        }, headers=admin_headers)
        assert response.status_code == 422
