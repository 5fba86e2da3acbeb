from __future__ import annotations

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi.testclient import TestClient

from vcard_reminders.api import create_app


def test_health_endpoint_reports_running() -> None:
    with TestClient(create_app()) as client:
        response = client.get("/")

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Server is running"}


def test_lifespan_starts_and_stops_scheduler() -> None:
    scheduler = BackgroundScheduler()

    with TestClient(create_app(scheduler)) as client:
        assert scheduler.running
        assert client.get("/").status_code == 200

    assert not scheduler.running
