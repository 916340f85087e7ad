"""
Integration tests for the JSON API
"""

import io

import pytest

from chemgrader.models.documents import JobState


def upload(client, content=b"%PDF-1.4 answer sheet", filename="answers.pdf",
           paper_id="paper-1", user_id="student-1"):
    return client.post(
        "/api/submissions",
        data={
            "file": (io.BytesIO(content), filename),
            "paper_id": paper_id,
            "user_id": user_id,
        },
        content_type="multipart/form-data",
    )


class TestHealth:

    def test_health_reports_services(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        data = response.get_json()["data"]
        assert data["status"] == "healthy"
        assert data["services"] == {"database": True, "extraction": True, "llm": True}
        assert "grading_operations" in data["operations"]


class TestMarkSchemeEndpoints:

    def test_upload_text_activates_scheme(self, client):
        response = client.post(
            "/api/papers/paper-1/markscheme",
            json={"text": "1.1 B [1 mark]", "hints": {"totalMarks": 20}},
        )

        assert response.status_code == 201
        body = response.get_json()
        assert body["status"] == "success"
        assert body["data"]["version"] == 1
        assert body["data"]["total_marks"] == 4
        assert [w["code"] for w in body["data"]["warnings"]] == ["total_marks_mismatch"]
        assert len(body["metadata"]["warnings"]) == 1

    def test_upload_file_uses_extraction(self, client, extraction_provider):
        response = client.post(
            "/api/papers/paper-1/markscheme",
            data={"file": (io.BytesIO(b"%PDF-1.4 scheme"), "scheme.pdf"), "totalMarks": "4"},
            content_type="multipart/form-data",
        )

        assert response.status_code == 201
        assert response.get_json()["data"]["warnings"] == []
        assert extraction_provider.submitted[0].filename == "scheme.pdf"

    def test_upload_without_text_is_rejected(self, client):
        response = client.post("/api/papers/paper-1/markscheme", json={"hints": {}})

        assert response.status_code == 400
        body = response.get_json()
        assert body["status"] == "error"
        assert body["errors"][0]["code"] == "VALIDATION_ERROR"
        assert body["errors"][0]["field"] == "text"

    def test_get_active_scheme(self, client, active_scheme):
        response = client.get("/api/papers/paper-1/markscheme")

        assert response.status_code == 200
        data = response.get_json()["data"]
        assert data["paperId"] == "paper-1"
        assert data["totalMarks"] == 4
        assert data["questionCount"] == 4

    def test_missing_scheme_is_404(self, client):
        response = client.get("/api/papers/paper-404/markscheme")

        assert response.status_code == 404
        assert response.get_json()["errors"][0]["code"] == "NOT_FOUND"


class TestSubmissionEndpoints:

    def test_submit_and_read_results(self, client, active_scheme):
        response = upload(client)

        assert response.status_code == 202
        body = response.get_json()
        assert body["status"] == "pending"
        submission_id = body["data"]["submission_id"]

        status = client.get(f"/api/submissions/{submission_id}/status").get_json()
        assert status["data"]["status"] == "MARKING_COMPLETE"
        assert "error_message" not in status["data"]

        results = client.get(f"/api/submissions/{submission_id}/results").get_json()
        assert results["status"] == "success"
        assert results["data"]["total_score"] == 4
        assert results["data"]["grade"] == "A*"
        assert len(results["data"]["results"]) == 4

    def test_failed_submission_reports_reason(self, client, active_scheme, extraction_provider):
        extraction_provider.states = [JobState.PENDING]

        submission_id = upload(client).get_json()["data"]["submission_id"]

        status = client.get(f"/api/submissions/{submission_id}/status").get_json()["data"]
        assert status["status"] == "FAILED"
        assert status["error_category"] == "timeout"
        assert status["error_message"]

        results = client.get(f"/api/submissions/{submission_id}/results").get_json()
        assert results["status"] == "pending"
        assert results["data"]["available"] is False

    def test_submit_without_scheme_is_400(self, client):
        response = upload(client, paper_id="paper-2")

        assert response.status_code == 400
        assert "No active mark scheme" in response.get_json()["message"]

    @pytest.mark.parametrize("filename", ["answers.txt", "answers"])
    def test_unsupported_file_type(self, client, active_scheme, filename):
        response = upload(client, filename=filename)

        assert response.status_code == 400
        assert response.get_json()["errors"][0]["field"] == "file"

    def test_missing_file(self, client, active_scheme):
        response = client.post(
            "/api/submissions", data={"paper_id": "paper-1", "user_id": "student-1"},
            content_type="multipart/form-data",
        )

        assert response.status_code == 400

    def test_unknown_submission_is_404(self, client):
        response = client.get("/api/submissions/nope/status")

        assert response.status_code == 404
        assert response.get_json()["status"] == "error"

    def test_statistics(self, client, active_scheme):
        upload(client)

        response = client.get("/api/papers/paper-1/statistics")

        assert response.status_code == 200
        questions = response.get_json()["data"]["questions"]
        assert {q["question_id"] for q in questions} == {"1.1", "1.2", "1.3", "1.4"}
        assert all(q["success_rate"] == 100.0 for q in questions)


def test_unknown_route_is_json_404(client):
    response = client.get("/api/does-not-exist")

    assert response.status_code == 404
    assert response.get_json()["errors"][0]["code"] == "NOT_FOUND"
