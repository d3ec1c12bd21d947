"""
API tests through the FastAPI test client
"""
from conftest import single_choice_payload

LEARNER = {"X-Learner-Id": "learner-1"}
OTHER = {"X-Learner-Id": "learner-2"}


def _upload(client, headers=LEARNER, filename="biology.pdf", title=None):
    data = {"title": title} if title else {}
    return client.post(
        "/api/documents",
        files={"file": (filename, b"%PDF-1.4 fake", "application/pdf")},
        data=data,
        headers=headers,
    )


class TestHealth:
    """Test cases for service endpoints"""

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["name"] == "SmartLearn API"

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "healthy"


class TestDocumentsApi:
    """Test cases for document endpoints"""

    def test_upload_and_list(self, client):
        response = _upload(client, title="Cell Biology")
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["document"]["title"] == "Cell Biology"
        assert body["document"]["page_count"] == 3

        listing = client.get("/api/documents", headers=LEARNER).json()
        assert listing["total"] == 1
        assert listing["documents"][0]["id"] == body["document"]["id"]

    def test_missing_learner_header(self, client):
        assert client.get("/api/documents").status_code == 401

    def test_rejects_non_pdf(self, client):
        response = _upload(client, filename="notes.txt")
        assert response.status_code == 422
        assert response.json() == {
            "success": False,
            "error": "Only PDF files are supported",
            "error_code": "VALIDATION_FAILED",
        }

    def test_unknown_document(self, client):
        response = client.get("/api/documents/doc_missing", headers=LEARNER)
        assert response.status_code == 404
        assert response.json()["error_code"] == "NOT_FOUND"

    def test_documents_are_private(self, client):
        """Test another learner sees a 404, not the document"""
        document_id = _upload(client).json()["document"]["id"]
        assert client.get(f"/api/documents/{document_id}", headers=OTHER).status_code == 404
        assert client.delete(f"/api/documents/{document_id}", headers=OTHER).status_code == 404
        assert client.get(f"/api/documents/{document_id}", headers=LEARNER).status_code == 200

    def test_delete(self, client):
        document_id = _upload(client).json()["document"]["id"]
        assert client.delete(f"/api/documents/{document_id}", headers=LEARNER).json()["success"] is True
        assert client.get(f"/api/documents/{document_id}", headers=LEARNER).status_code == 404

    def test_recommendations(self, client):
        document_id = _upload(client).json()["document"]["id"]
        response = client.get(
            f"/api/documents/{document_id}/pages/1/recommendations", headers=LEARNER
        )
        assert response.status_code == 200
        assert response.json()["page_number"] == 1
        assert response.json()["recommendations"] == []


class TestChatApi:
    """Test cases for chat endpoints"""

    def test_ask_and_history(self, client, llm):
        document_id = _upload(client).json()["document"]["id"]
        llm.queue("Glucose is broken down in the mitochondria [page 2].")

        response = client.post(
            f"/api/chat/{document_id}", json={"question": "Where is glucose broken down?"}, headers=LEARNER
        )
        assert response.status_code == 200
        body = response.json()
        assert [c["page_number"] for c in body["citations"]] == [2]
        assert 2 in [s["page_number"] for s in body["sources"]]
        assert len(body["sources"]) >= len(body["citations"])

        history = client.get(f"/api/chat/{document_id}/history", headers=LEARNER).json()
        assert history["total"] == 2
        assert history["history"][0]["role"] == "user"

    def test_model_failure(self, client, llm):
        document_id = _upload(client).json()["document"]["id"]
        llm.queue(RuntimeError("down"), RuntimeError("still down"))

        response = client.post(f"/api/chat/{document_id}", json={"question": "Why?"}, headers=LEARNER)
        assert response.status_code == 502
        assert response.json()["error_code"] == "GENERATION_FAILED"


class TestQuizApi:
    """Test cases for quiz endpoints"""

    def test_generate_submit_and_progress(self, client, llm):
        document_id = _upload(client).json()["document"]["id"]
        llm.queue(single_choice_payload(3))

        response = client.post(
            "/api/quizzes",
            json={"document_id": document_id, "quiz_type": "mcq", "num_questions": 3},
            headers=LEARNER,
        )
        assert response.status_code == 200
        quiz = response.json()["quiz"]
        assert quiz["quiz_type"] == "single-choice"

        answers = [{"kind": "choice", "index": 0}, {"kind": "choice", "index": 1}, None]
        submit_url = f"/api/quizzes/document/{document_id}/{quiz['id']}/submit"
        response = client.post(submit_url, json={"answers": answers, "score": 100}, headers=LEARNER)

        assert response.status_code == 200
        body = response.json()
        assert body["quiz"]["score"] == 33
        assert body["quiz"]["is_attempted"] is True
        assert body["progress"]["total_quizzes"] == 1

        again = client.post(submit_url, json={"answers": answers}, headers=LEARNER)
        assert again.status_code == 409
        assert again.json()["error_code"] == "QUIZ_ALREADY_ATTEMPTED"

        progress = client.get("/api/quizzes/progress", headers=LEARNER).json()
        assert progress["average_score"] == 33
        assert client.get("/api/quizzes/count", headers=LEARNER).json() == {"total": 1, "attempted": 1}

        latest = client.get(f"/api/quizzes/document/{document_id}/latest", headers=LEARNER).json()
        assert latest["quiz"]["id"] == quiz["id"]

        dashboard = client.get("/api/quizzes/dashboard", headers=LEARNER).json()
        assert dashboard["stats"]["total_quizzes_attempted"] == 1

    def test_generate_with_canonical_type(self, client, llm):
        """Test the full quiz type name generates a five question quiz"""
        document_id = _upload(client).json()["document"]["id"]
        llm.queue(single_choice_payload(5))

        response = client.post(
            "/api/quizzes",
            json={"document_id": document_id, "quiz_type": "single-choice", "num_questions": 5},
            headers=LEARNER,
        )
        assert response.status_code == 200
        quiz = response.json()["quiz"]
        assert quiz["quiz_type"] == "single-choice"
        assert len(quiz["questions"]) == 5

    def test_question_count_bounds(self, client):
        document_id = _upload(client).json()["document"]["id"]
        response = client.post(
            "/api/quizzes",
            json={"document_id": document_id, "quiz_type": "single-choice", "num_questions": 20},
            headers=LEARNER,
        )
        assert response.status_code == 422

    def test_wrong_answer_count(self, client, llm):
        document_id = _upload(client).json()["document"]["id"]
        llm.queue(single_choice_payload(3))
        quiz = client.post(
            "/api/quizzes", json={"document_id": document_id, "num_questions": 3}, headers=LEARNER
        ).json()["quiz"]

        response = client.post(
            f"/api/quizzes/document/{document_id}/{quiz['id']}/submit",
            json={"answers": [None]},
            headers=LEARNER,
        )
        assert response.status_code == 422
        assert response.json()["error_code"] == "VALIDATION_FAILED"
