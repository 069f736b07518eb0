"""API tests with the job service mocked out."""

import uuid
from unittest.mock import AsyncMock

import pytest

from conftest import make_record, make_token
from daylight.api.v1.dependencies import get_job_service, get_sse_manager
from daylight.core.exceptions import (
    AppError,
    InvalidJobStateError,
    JobConflictError,
    NotFoundError,
    ValidationError,
)
from daylight.main import app
from daylight.schemas.jobs import JobStatus
from daylight.services.job_service import JobService


@pytest.fixture
def job_service() -> AsyncMock:
    service = AsyncMock(spec=JobService)
    app.dependency_overrides[get_job_service] = lambda: service
    return service


class TestSubmit:

    def test_accepted(self, test_client, auth_headers, job_service, user_id):
        entry_id = uuid.uuid4()
        record = make_record(JobStatus.PENDING, user_id=user_id, journal_entry_id=entry_id)
        job_service.submit_extraction.return_value = record
        evidence_id = uuid.uuid4()

        response = test_client.post(
            f"/api/v1/journal/{entry_id}/submit",
            json={"evidence_ids": [str(evidence_id)], "timezone": "America/New_York"},
            headers=auth_headers,
        )

        assert response.status_code == 202
        body = response.json()
        assert body["status"] is True
        assert body["data"]["job_id"] == str(record.id)
        assert body["data"]["status"] == "pending"
        assert body["data"]["stream_url"] == f"/api/v1/jobs/{record.id}/stream"
        job_service.submit_extraction.assert_awaited_once_with(
            user_id=user_id,
            journal_entry_id=entry_id,
            evidence_ids=[evidence_id],
            timezone="America/New_York",
        )

    def test_body_is_optional(self, test_client, auth_headers, job_service):
        entry_id = uuid.uuid4()
        job_service.submit_extraction.return_value = make_record(journal_entry_id=entry_id)

        response = test_client.post(f"/api/v1/journal/{entry_id}/submit", headers=auth_headers)

        assert response.status_code == 202
        assert job_service.submit_extraction.await_args.kwargs["evidence_ids"] == []

    @pytest.mark.parametrize(
        "error,status_code,title",
        [
            (JobConflictError("Journal entry already has an active job"), 409, "Extraction Already In Progress"),
            (ValidationError("Journal entry text is empty"), 400, "Invalid Request"),
            (NotFoundError("Journal entry not found"), 404, "Not Found"),
            (AppError("Could not start extraction. Please try again."), 500, "Internal Server Error"),
        ],
    )
    def test_errors(self, test_client, auth_headers, job_service, error, status_code, title):
        job_service.submit_extraction.side_effect = error

        response = test_client.post(f"/api/v1/journal/{uuid.uuid4()}/submit", headers=auth_headers)

        assert response.status_code == status_code
        detail = response.json()["detail"]
        assert detail["title"] == title
        assert detail["detail"] == error.message

    def test_requires_authentication(self, test_client, job_service):
        response = test_client.post(f"/api/v1/journal/{uuid.uuid4()}/submit")

        assert response.status_code == 401
        job_service.submit_extraction.assert_not_awaited()

    @pytest.mark.parametrize(
        "token",
        [
            "not-a-jwt",
            make_token(uuid.uuid4(), iss="https://someone-else.supabase.co/auth/v1"),
            make_token(uuid.uuid4(), exp=1),
            make_token(uuid.uuid4(), aud="anon"),
            make_token("not-a-uuid"),
        ],
    )
    def test_rejects_bad_tokens(self, test_client, job_service, token):
        response = test_client.post(
            f"/api/v1/journal/{uuid.uuid4()}/submit",
            headers={"Authorization": f"Bearer {token}"},
        )

        assert response.status_code == 401

    def test_reprocess(self, test_client, auth_headers, job_service, user_id):
        entry_id = uuid.uuid4()
        job_service.reprocess_entry.return_value = make_record(journal_entry_id=entry_id)

        response = test_client.post(f"/api/v1/journal/{entry_id}/reprocess", headers=auth_headers)

        assert response.status_code == 202
        assert response.json()["data"]["message"] == "Reprocessing started"
        job_service.reprocess_entry.assert_awaited_once_with(
            user_id=user_id, journal_entry_id=entry_id, timezone=None
        )


class TestJobs:

    def test_get_job(self, test_client, auth_headers, job_service):
        record = make_record(JobStatus.FAILED, error_message="Extraction timed out")
        job_service.get_job.return_value = record

        response = test_client.get(f"/api/v1/jobs/{record.id}", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["message"] == "Extraction timed out"
        assert response.json()["data"]["status"] == "failed"

    def test_list_active(self, test_client, auth_headers, job_service):
        job_service.list_active_jobs.return_value = [make_record(), make_record(JobStatus.PROCESSING)]

        response = test_client.get("/api/v1/jobs/active", headers=auth_headers)

        assert response.status_code == 200
        assert [item["status"] for item in response.json()["data"]["items"]] == ["pending", "processing"]

    def test_cancel_running_job_conflicts(self, test_client, auth_headers, job_service):
        job_service.cancel_job.side_effect = InvalidJobStateError("Only pending jobs can be cancelled", status="processing")

        response = test_client.post(f"/api/v1/jobs/{uuid.uuid4()}/cancel", headers=auth_headers)

        assert response.status_code == 409
        assert response.json()["detail"]["title"] == "Invalid Job State"

    def test_stream_accepts_query_token(self, test_client, job_service, user_id):
        record = make_record(JobStatus.COMPLETED, user_id=user_id)
        job_service.get_job.return_value = record

        class FakeSSEManager:
            async def stream_job_events(self, job_id):
                yield f"event: job:completed\ndata: {{\"job_id\": \"{job_id}\"}}\n\n"

        app.dependency_overrides[get_sse_manager] = lambda: FakeSSEManager()

        response = test_client.get(f"/api/v1/jobs/{record.id}/stream", params={"token": make_token(user_id)})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert "event: job:completed" in response.text

    def test_stream_of_someone_elses_job(self, test_client, job_service, user_id):
        job_service.get_job.side_effect = NotFoundError("Job not found")

        response = test_client.get(f"/api/v1/jobs/{uuid.uuid4()}/stream", params={"token": make_token(user_id)})

        assert response.status_code == 404


def test_root(test_client):
    response = test_client.get("/")

    assert response.status_code == 200
    assert response.json()["health"] == "/health"
    assert "X-Correlation-ID" in response.headers
