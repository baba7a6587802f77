def test_root_reports_running(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "running"


def test_health_reports_readiness(client):
    response = client.get("/health")
    body = response.json()
    assert response.status_code == 200
    assert body["readiness"]["database"]["ok"] in (True, False)
    assert body["readiness"]["sweeper"]["running"] is False
    assert "rate_limiter_keys" in body["readiness"]


def test_metrics_exposed(client):
    client.get("/")
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "xloop_auth_http_requests_total" in response.text


def test_security_headers_and_request_id(client):
    response = client.get("/", headers={"X-Request-ID": "abc-123"})
    assert response.headers["X-Request-ID"] == "abc-123"
    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_validation_errors_use_error_envelope(client):
    response = client.post("/api/v1/auth/login", json={"email": "not-an-email"})
    body = response.json()
    assert response.status_code == 422
    assert body["success"] is False
    assert body["error"] == "Validation failed"
    assert {d["field"] for d in body["details"]} >= {"body.password"}
