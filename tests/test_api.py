"""API tests using FastAPI's TestClient."""

import pytest
from fastapi.testclient import TestClient

from examrank.main import app
from examrank.models import JobRun, JobStatus, JobType
from examrank.services.normalization import NormalizationService


@pytest.fixture
def client(db):
    # No context manager: the lifespan (and scheduler) stays off
    return TestClient(app)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["scheduler"] == "stopped"


def test_request_id_header_is_echoed(client):
    response = client.get("/health", headers={"X-Request-ID": "abc-123"})
    assert response.headers["X-Request-ID"] == "abc-123"


def test_list_methods(client):
    response = client.get("/api/v1/normalization/methods")
    assert response.status_code == 200
    methods = {m["value"]: m for m in response.json()}
    assert set(methods) == {"z_score", "percentile", "modified_z", "equating", "custom", "raw"}
    assert methods["z_score"]["label"] == "Z-Score (SSC Standard)"
    assert methods["percentile"]["needs_distribution"] is True


class TestJobsApi:
    def test_queue_and_run_batch_job(self, client, db, make_exam, make_shift, add_scores):
        exam = make_exam()
        add_scores(exam, make_shift(exam, 1), [float(s) for s in range(20, 180, 4)])
        add_scores(exam, make_shift(exam, 2), [float(s) for s in range(30, 170, 5)], category="SC")

        response = client.post(
            "/api/v1/jobs",
            json={"job_type": "batch_processing", "exam_id": exam.id},
        )
        assert response.status_code == 202
        body = response.json()
        assert body["metadata"] == {"examId": exam.id}
        assert body["triggered_by"] == "api"

        detail = client.get(f"/api/v1/jobs/{body['id']}").json()
        assert detail["status"] == "success"
        assert detail["progress_percent"] == 100
        assert detail["records_processed"] == 68

        readiness = client.get(f"/api/v1/exams/{exam.id}/readiness").json()
        assert readiness["total_submissions"] == 68
        assert readiness["normalization_done"] is True
        assert readiness["ranks_done"] is True
        assert readiness["cutoffs_ready"] is True

        cutoffs = client.get(f"/api/v1/exams/{exam.id}/cutoffs").json()
        assert [c["category"] for c in cutoffs] == ["SC", "UR"]

        shifts = client.get(f"/api/v1/exams/{exam.id}/shifts").json()
        assert [s["shift_number"] for s in shifts] == [1, 2]
        assert all(s["stats_updated_at"] is not None for s in shifts)

        listing = client.get("/api/v1/jobs", params={"status": "success"}).json()
        assert listing["total"] == 1

    def test_conflicting_job_is_rejected(self, client, db, make_exam):
        exam = make_exam()
        db.add(
            JobRun(
                job_name="normalization (exam)",
                job_type=JobType.NORMALIZATION,
                status=JobStatus.PENDING,
                job_metadata={"examId": exam.id},
            )
        )
        db.commit()

        response = client.post("/api/v1/jobs", json={"job_type": "rank_calculation", "exam_id": exam.id})

        assert response.status_code == 409
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "CONFLICT"

    def test_missing_job(self, client):
        response = client.get("/api/v1/jobs/999")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    def test_invalid_job_type(self, client):
        response = client.post("/api/v1/jobs", json={"job_type": "reindex"})
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_force_normalization(self, client, make_exam, make_shift, add_scores):
        exam = make_exam()
        add_scores(exam, make_shift(exam), [12, 24, 36])

        response = client.post("/api/v1/normalization/force", json={"exam_id": exam.id})

        assert response.status_code == 202
        assert response.json()["triggered_by"] == "force"
        status_rows = client.get("/api/v1/normalization/status", params={"exam_id": exam.id}).json()
        assert status_rows[0]["normalization_version"] == 1
        assert status_rows[0]["significance"]["percent_new"] == 0.0


class TestNormalizationApi:
    def test_threshold_update(self, client, make_exam):
        exam = make_exam()
        response = client.patch(
            "/api/v1/normalization/threshold",
            json={"exam_id": exam.id, "threshold": 7.5},
        )
        assert response.status_code == 200
        assert response.json() == {"exam_id": exam.id, "threshold": 7.5}

    def test_threshold_out_of_range(self, client, make_exam):
        exam = make_exam()
        response = client.patch(
            "/api/v1/normalization/threshold",
            json={"exam_id": exam.id, "threshold": 150},
        )
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_status_for_unknown_exam(self, client):
        response = client.get("/api/v1/normalization/status", params={"exam_id": 4321})
        assert response.status_code == 404

    def test_reevaluate_submission(self, client, db, make_exam, make_shift, add_scores, make_submission):
        exam = make_exam()
        shift = make_shift(exam)
        add_scores(exam, shift, [50, 70, 90, 110])
        NormalizationService(db).normalize_exam(exam)
        late = make_submission(exam, shift, 60)

        response = client.post(f"/api/v1/submissions/{late.id}/reevaluate", json={"raw_score": 130})

        assert response.status_code == 200
        body = response.json()
        assert body["submission_id"] == late.id
        assert body["normalized_score"] is not None
        assert body["ranks_recalculated"] is True
        assert body["significance"]["new_count"] == 1

        db.expire_all()
        db.refresh(late)
        assert late.raw_score == 130
        assert late.overall_rank == 1

    def test_reevaluate_missing_submission(self, client):
        response = client.post("/api/v1/submissions/777/reevaluate")
        assert response.status_code == 404


class TestScheduledJobsApi:
    def test_lifecycle(self, client, make_exam):
        exam = make_exam()
        created = client.post(
            "/api/v1/scheduled-jobs",
            json={
                "name": "nightly-batch",
                "job_type": "batch_processing",
                "cron_expression": "0 2 * * *",
                "config": {"examId": exam.id},
            },
        )
        assert created.status_code == 201
        scheduled = created.json()
        assert scheduled["next_run_at"] is not None

        duplicate = client.post(
            "/api/v1/scheduled-jobs",
            json={"name": "nightly-batch", "job_type": "normalization", "cron_expression": "0 3 * * *"},
        )
        assert duplicate.status_code == 409

        patched = client.patch(
            f"/api/v1/scheduled-jobs/{scheduled['id']}",
            json={"cron_expression": "30 1 * * 1", "is_enabled": False},
        )
        assert patched.status_code == 200
        assert patched.json()["cron_expression"] == "30 1 * * 1"
        assert patched.json()["is_enabled"] is False

        assert client.get("/api/v1/scheduled-jobs", params={"enabled_only": True}).json() == []

        deleted = client.delete(f"/api/v1/scheduled-jobs/{scheduled['id']}")
        assert deleted.status_code == 200
        assert client.get("/api/v1/scheduled-jobs").json() == []

    @pytest.mark.parametrize("cron", ["61 2 * * *", "0 2 * *"])
    def test_invalid_cron(self, client, cron):
        response = client.post(
            "/api/v1/scheduled-jobs",
            json={"name": "broken", "job_type": "normalization", "cron_expression": cron},
        )
        assert response.status_code == 422
