import pytest
from fastapi.testclient import TestClient

from api import app
from pyqmock.services.engine import get_engine


@pytest.fixture
def client(engine):
    app.dependency_overrides[get_engine] = lambda: engine
    yield TestClient(app)
    app.dependency_overrides.clear()


def _generate(client, **payload):
    response = client.post("/api/v1/mock-test/generate", json={"exam_type": "mock", **payload})
    assert response.status_code == 200, response.text
    return response.json()["test"]


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_list_exams(client):
    data = client.get("/api/v1/exams").json()
    assert data["count"] == 2
    by_type = {e["exam_type"]: e for e in data["exams"]}
    assert by_type["mock"]["pyq_count"] == 100
    assert by_type["mock"]["supply_shortfall"] == {}
    assert len(by_type["jee"]["sections"]) == 2


def test_trend_analysis_endpoint(client):
    response = client.get("/api/v1/mock-test/analysis", params={"exam_type": "mock"})
    assert response.status_code == 200
    trend = response.json()["trend_analysis"]
    assert trend["total_questions_analyzed"] == 100
    assert sum(trend["optimized_distribution"].values()) == 100


def test_generate_endpoint(client):
    test = _generate(client, difficulty="easy", question_count=8, time_limit_minutes=30)
    assert test["total_questions"] == 8
    assert len(test["questions"]) == 8
    assert test["time_limit_minutes"] == 30
    assert {q["difficulty"] for q in test["questions"]} == {"easy"}


def test_generate_error_mapping(client):
    url = "/api/v1/mock-test/generate"
    assert client.post(url, json={"exam_type": "mock", "question_count": 500}).status_code == 422
    assert client.post(url, json={"exam_type": "mock", "difficulty": "brutal"}).status_code == 400
    # Request validation
    assert client.post(url, json={"exam_type": "mock", "question_count": 0}).status_code == 422
    assert client.post(url, json={}).status_code == 422


def test_attempt_flow(client):
    test = _generate(client)
    attempt_id = client.post("/api/v1/mock-test/attempt",
                             json={"mock_test_id": test["id"]}).json()["attempt_id"]

    first, second = test["questions"][:2]
    saved = client.put(f"/api/v1/mock-test/attempt/{attempt_id}/responses", json={"responses": [
        {"question_id": first["id"], "selected_options": first["correct_options"], "time_spent": 40},
    ]})
    assert saved.json()["saved"] == 1

    pending = client.get(f"/api/v1/mock-test/attempt/{attempt_id}/analysis")
    assert pending.status_code == 404

    submitted = client.post(f"/api/v1/mock-test/attempt/{attempt_id}/submit", json={"responses": [
        {"question_id": second["id"], "selected_options": second["correct_options"], "time_spent": 60},
    ]})
    assert submitted.status_code == 200
    result = submitted.json()["result"]
    assert result["attempt"]["status"] == "completed"
    assert result["scores"]["total_correct"] == 2
    assert result["analysis"]["total_unattempted"] == 8
    assert result["attempt"]["obtained_marks"] == 8

    analysis = client.get(f"/api/v1/mock-test/attempt/{attempt_id}/analysis").json()["analysis"]
    assert analysis == result["analysis"]

    again = client.post(f"/api/v1/mock-test/attempt/{attempt_id}/submit", json={"responses": []})
    assert again.status_code == 409


def test_unknown_ids_are_404(client):
    assert client.post("/api/v1/mock-test/attempt", json={"mock_test_id": "nope"}).status_code == 404
    assert client.post("/api/v1/mock-test/attempt/nope/submit", json={}).status_code == 404
    assert client.get("/api/v1/mock-test/attempt/nope/analysis").status_code == 404


def test_integer_answers_accept_numbers(client):
    test = _generate(client, exam_type="jee")
    attempt_id = client.post("/api/v1/mock-test/attempt",
                             json={"mock_test_id": test["id"]}).json()["attempt_id"]
    integer = next(q for q in test["questions"] if q["type"] == "integer")

    result = client.post(f"/api/v1/mock-test/attempt/{attempt_id}/submit", json={"responses": [
        {"question_id": integer["id"], "selected_options": [int(integer["correct_options"][0])]},
    ]}).json()["result"]
    assert result["scores"]["total_correct"] == 1
    assert result["attempt"]["obtained_marks"] == 4


def test_expire_endpoint(client, clock):
    test = _generate(client)
    attempt_id = client.post("/api/v1/mock-test/attempt",
                             json={"mock_test_id": test["id"]}).json()["attempt_id"]
    clock.advance(minutes=61)

    response = client.post("/api/v1/mock-test/expire")
    assert response.json()["auto_submitted"] == [attempt_id]


def test_metrics_endpoints(client):
    _generate(client)
    stats = client.get("/api/v1/metrics").json()["metrics"]
    assert stats["operations"]["generate"]["calls"] == 1

    client.post("/api/v1/metrics/reset")
    assert client.get("/api/v1/metrics").json()["metrics"] == {"message": "No operations recorded yet"}
