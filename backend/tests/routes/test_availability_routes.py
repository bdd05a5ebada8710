from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from fastapi.testclient import TestClient

from tutorbook.models.booking import BookingStatus

TUTOR_ID = "tutor-anna"


def _url(path: str = "availability") -> str:
    return f"/api/v1/tutors/{TUTOR_ID}/{path}"


class TestAvailabilityEndpoint:
    def test_lists_free_start_times(self, client: TestClient, slot_factory, booking_factory) -> None:
        # Future dates: read-side checks use the real clock
        day = date(2030, 3, 10)
        slot_factory(TUTOR_ID, day, "09:00", "10:00")
        slot_factory(TUTOR_ID, day, "14:00", "15:00")
        booking_factory(
            selected_at=datetime(2030, 3, 10, 8, 0, tzinfo=timezone.utc),
            status=BookingStatus.CONFIRMED,
        )

        response = client.get(_url(), params={"date_from": "2030-03-10", "date_to": "2030-03-11"})

        assert response.status_code == 200
        body = response.json()
        assert body["timezone"] == "Europe/Copenhagen"
        assert body["days"] == [{"date": "2030-03-10", "start_times": ["14:00"]}]

    def test_no_authentication_needed(self, client: TestClient) -> None:
        today = date.today().isoformat()
        response = client.get(_url(), params={"date_from": today, "date_to": today})
        assert response.status_code == 200
        assert response.json()["days"] == []

    def test_reversed_range_is_bad_request(self, client: TestClient) -> None:
        response = client.get(_url(), params={"date_from": "2030-03-11", "date_to": "2030-03-10"})

        assert response.status_code == 400
        problem = response.json()
        assert problem["code"] == "INVALID_DATE_RANGE"
        assert problem["title"] == "Bad Request"

    def test_missing_dates_fail_validation(self, client: TestClient) -> None:
        response = client.get(_url())
        assert response.status_code == 422

    def test_slot_statuses(self, client: TestClient, slot_factory, booking_factory) -> None:
        day = date(2030, 3, 10)
        slot_factory(TUTOR_ID, day, "09:00", "10:00")
        slot_factory(TUTOR_ID, day, "10:00", "11:00")
        booking_factory(
            selected_at=datetime(2030, 3, 10, 9, 0, tzinfo=timezone.utc),
            status=BookingStatus.CONFIRMED,
        )

        response = client.get(
            _url("slots"), params={"date_from": day.isoformat(), "date_to": (day + timedelta(days=1)).isoformat()}
        )

        assert response.status_code == 200
        assert [(s["start_time"], s["status"]) for s in response.json()["slots"]] == [
            ("09:00", "AVAILABLE"),
            ("10:00", "BOOKED"),
        ]
