"""Tests for the HTTP surface."""

import pytest
from fastapi.testclient import TestClient

from mailspine.api import create_app
from mailspine.core.enums import JobStatus
from mailspine.delivery.transport import MockTransport
from mailspine.service import MailService

PREFIX = "/api/v1"


@pytest.fixture
def service(settings, store):
    return MailService.from_settings(settings, store=store, transport=MockTransport())


@pytest.fixture
def client(settings, service):
    app = create_app(settings, service=service)
    with TestClient(app) as c:
        yield c


class TestCreateJob:
    def test_created(self, client, store):
        resp = client.post(f"{PREFIX}/jobs", json={"subject": "Hello", "body": "World"})
        assert resp.status_code == 201
        data = resp.json()
        assert data["status"] == "pending"
        assert store.get_job(data["id"]).subject == "Hello"

    def test_unix_scheduled_at(self, client):
        resp = client.post(
            f"{PREFIX}/jobs",
            json={"subject": "S", "body": "B", "scheduled_at": 1_900_000_000},
        )
        assert resp.status_code == 201
        assert resp.json()["scheduled_at"].startswith("2030-03-17")

    def test_missing_subject_is_problem(self, client, store):
        resp = client.post(f"{PREFIX}/jobs", json={"subject": "  ", "body": "B"})
        assert resp.status_code == 400
        assert resp.headers["content-type"].startswith("application/problem+json")
        problem = resp.json()
        assert problem["title"] == "subject and body required"
        assert problem["errors"][0]["field"] == "subject"
        assert store.list_jobs() == []

    def test_bad_scheduled_at(self, client):
        resp = client.post(f"{PREFIX}/jobs", json={"subject": "S", "body": "B", "scheduled_at": "soon"})
        assert resp.status_code == 400
        assert resp.json()["errors"][0]["field"] == "scheduled_at"

    def test_malformed_json(self, client):
        resp = client.post(
            f"{PREFIX}/jobs",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert resp.status_code == 400
        assert resp.json()["title"] == "Request validation failed"


class TestReadJobs:
    def test_list_and_get(self, client):
        job_id = client.post(f"{PREFIX}/jobs", json={"subject": "S", "body": "B"}).json()["id"]

        listed = client.get(f"{PREFIX}/jobs").json()
        assert [j["id"] for j in listed] == [job_id]

        detail = client.get(f"{PREFIX}/jobs/{job_id}").json()
        assert detail["status"] == "pending"
        assert detail["total_sends"] == 0
        assert detail["send_counts"] == {}

    def test_unknown_job_is_404(self, client):
        resp = client.get(f"{PREFIX}/jobs/nope")
        assert resp.status_code == 404
        assert resp.json()["status"] == 404


class TestRunJob:
    def test_run_dispatches_and_conflicts_on_repeat(self, client, service, store, add_subscribers, wait_until):
        add_subscribers("a@example.com", "b@example.com")
        job_id = client.post(
            f"{PREFIX}/jobs",
            json={"subject": "S", "body": "B", "scheduled_at": "2099-01-01T00:00:00Z"},
        ).json()["id"]

        resp = client.post(f"{PREFIX}/jobs/{job_id}/run")
        assert resp.status_code == 202
        assert resp.json() == {"id": job_id, "status": "running"}

        assert client.post(f"{PREFIX}/jobs/{job_id}/run").status_code == 409
        assert wait_until(lambda: store.get_job(job_id).status is JobStatus.COMPLETED)

        detail = client.get(f"{PREFIX}/jobs/{job_id}", params={"include_sends": True}).json()
        assert detail["send_counts"] == {"sent": 2}
        assert {s["email"] for s in detail["sends"]} == {"a@example.com", "b@example.com"}

    def test_run_unknown_job(self, client):
        assert client.post(f"{PREFIX}/jobs/nope/run").status_code == 404


class TestSubscribers:
    def test_upload(self, client):
        csv_bytes = b"\xef\xbb\xbfa@example.com,Alice\n\nb@example.com\na@example.com\n"
        resp = client.post(
            f"{PREFIX}/subscribers/upload",
            files={"file": ("subs.csv", csv_bytes, "text/csv")},
        )
        assert resp.status_code == 200
        assert resp.json() == {"added": 2, "skipped": 1}

        emails = [s["email"] for s in client.get(f"{PREFIX}/subscribers").json()]
        assert emails == ["a@example.com", "b@example.com"]

    def test_upload_rejects_non_utf8(self, client, store):
        resp = client.post(
            f"{PREFIX}/subscribers/upload",
            files={"file": ("subs.csv", b"ok@example.com\ncaf\xe9@example.com\n", "text/csv")},
        )
        assert resp.status_code == 400
        problem = resp.json()
        assert problem["title"] == "file must be UTF-8"
        assert problem["errors"][0]["field"] == "file"
        assert store.list_subscribers() == []

    def test_upload_too_large(self, settings, service, store):
        small = settings.model_copy(update={"max_upload_bytes": 10})
        with TestClient(create_app(small, service=service)) as c:
            resp = c.post(
                f"{PREFIX}/subscribers/upload",
                files={"file": ("subs.csv", b"a@example.com\nb@example.com\n", "text/csv")},
            )
        assert resp.status_code == 400
        assert resp.json()["title"] == "file too large"
        assert store.list_subscribers() == []

    def test_upload_archived(self, settings, service, tmp_path):
        archiving = settings.model_copy(update={"uploads_dir": str(tmp_path / "uploads")})
        with TestClient(create_app(archiving, service=service)) as c:
            resp = c.post(
                f"{PREFIX}/subscribers/upload",
                files={"file": ("subs.csv", b"a@example.com\n", "text/csv")},
            )
        assert resp.json() == {"added": 1, "skipped": 0}
        (archived,) = (tmp_path / "uploads").iterdir()
        assert archived.name.endswith("_subs.csv")
        assert archived.read_bytes() == b"a@example.com\n"

    def test_upload_without_file(self, client):
        resp = client.post(f"{PREFIX}/subscribers/upload")
        assert resp.status_code == 400
        assert resp.json()["errors"][0]["field"] == "file"


class TestHealthAndMiddleware:
    def test_health(self, client):
        data = client.get(f"{PREFIX}/health").json()
        assert data["status"] == "ok"
        assert data["healthy"] is False
        assert data["transport"] == "mock"
        assert data["completion"] == "countdown"

    def test_request_id_echoed(self, client):
        resp = client.get(f"{PREFIX}/health", headers={"X-Request-ID": "req-123"})
        assert resp.headers["X-Request-ID"] == "req-123"

    def test_request_id_generated(self, client):
        assert client.get(f"{PREFIX}/health").headers["X-Request-ID"]

    def test_unhandled_error_is_500_problem(self, settings, service, store, monkeypatch):
        def boom():
            raise RuntimeError("kaput")

        monkeypatch.setattr(store, "list_jobs", boom)
        with TestClient(create_app(settings, service=service), raise_server_exceptions=False) as c:
            resp = c.get(f"{PREFIX}/jobs")
        assert resp.status_code == 500
        assert resp.json()["title"] == "Internal Server Error"


class TestBackgroundLifespan:
    def test_scheduler_runs_when_enabled(self, settings, store, add_subscribers, wait_until):
        add_subscribers("a@example.com")
        bg = settings.model_copy(update={"run_background": True})
        service = MailService.from_settings(bg, store=store, transport=MockTransport())

        with TestClient(create_app(bg, service=service)) as c:
            job_id = c.post(f"{PREFIX}/jobs", json={"subject": "S", "body": "B"}).json()["id"]
            assert wait_until(lambda: store.get_job(job_id).status is JobStatus.COMPLETED)
            assert c.get(f"{PREFIX}/health").json()["healthy"] is True
