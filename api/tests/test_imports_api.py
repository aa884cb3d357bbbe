FIXTURE_BATCH = ["B07XJ8C8F5", "https://www.amazon.com/dp/B08L5TNJHG", "B000000000", "garbage"]


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_imports_require_admin_token(client):
    response = client.post("/v1/imports", json={"raw_inputs": ["B07XJ8C8F5"]})
    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "unauthorized"


def test_submit_import_runs_in_background(client, admin_headers):
    response = client.post(
        "/v1/imports",
        json={"raw_inputs": [*FIXTURE_BATCH, "B07XJ8C8F5"], "options": {"seed": 7}},
        headers=admin_headers,
    )

    assert response.status_code == 202
    payload = response.json()
    assert payload["accepted_count"] == 3
    assert payload["tokens_reserved"] == 3
    assert payload["rejected_inputs"] == [{"index": 3, "raw": "garbage", "reason": "Invalid identifier format"}]
    assert payload["duplicates"][0]["index"] == 4
    assert payload["duplicates"][0]["original_index"] == 0

    status = client.get(f"/v1/imports/{payload['job_id']}", headers=admin_headers)
    assert status.status_code == 200
    body = status.json()
    assert body["status"] == "completed"
    assert (body["processed"], body["succeeded"], body["failed"]) == (3, 2, 1)
    assert body["errors"][0]["identifier"] == "B000000000"
    assert body["errors"][0]["kind"] == "enrichment_miss"


def test_submit_without_valid_inputs_is_bad_request(client, admin_headers):
    response = client.post("/v1/imports", json={"raw_inputs": ["nope"]}, headers=admin_headers)

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "invalid_input"


def test_budget_shortfall_is_payment_required(client, admin_headers):
    raw_inputs = [f"B{index:09d}" for index in range(11)]
    response = client.post("/v1/imports", json={"raw_inputs": raw_inputs}, headers=admin_headers)

    assert response.status_code == 402
    detail = response.json()["detail"]
    assert detail["code"] == "budget_exceeded"
    assert detail["details"] == {"required": 11, "remaining": 10}

    budget = client.get("/v1/budget", headers=admin_headers).json()
    assert budget["used"] == 0
    assert budget["remaining"] == 10


def test_budget_reflects_spent_tokens(client, admin_headers):
    client.post("/v1/imports", json={"raw_inputs": ["B07XJ8C8F5", "B08L5TNJHG"]}, headers=admin_headers)

    budget = client.get("/v1/budget", headers=admin_headers).json()
    assert budget["limit"] == 10
    assert budget["used"] == 2
    assert budget["used"] + budget["remaining"] == budget["limit"]
    assert budget["percentage"] == 20.0
    assert "resets_at" in budget


def test_unknown_job_is_not_found(client, admin_headers):
    assert client.get("/v1/imports/missing", headers=admin_headers).status_code == 404
    response = client.post("/v1/imports/missing/stop", headers=admin_headers)
    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "not_found"


def test_stop_pending_job(client, admin_headers, orchestrator):
    job_id = orchestrator.submit(["B07XJ8C8F5"]).job_id

    response = client.post(f"/v1/imports/{job_id}/stop", headers=admin_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "stopped"
    assert body["errors"][-1]["message"] == "Cancelled by user"


def test_stop_completed_job_is_a_noop(client, admin_headers):
    job_id = client.post("/v1/imports", json={"raw_inputs": ["B07XJ8C8F5"]}, headers=admin_headers).json()["job_id"]

    response = client.post(f"/v1/imports/{job_id}/stop", headers=admin_headers)

    assert response.json()["status"] == "completed"


def test_list_recent_imports(client, admin_headers):
    first = client.post("/v1/imports", json={"raw_inputs": ["B07XJ8C8F5"]}, headers=admin_headers).json()["job_id"]
    second = client.post("/v1/imports", json={"raw_inputs": ["B08L5TNJHG"]}, headers=admin_headers).json()["job_id"]

    response = client.get("/v1/imports", params={"limit": 5}, headers=admin_headers)

    assert response.status_code == 200
    assert [item["id"] for item in response.json()] == [second, first]


def test_invalid_options_are_rejected(client, admin_headers):
    response = client.post(
        "/v1/imports",
        json={"raw_inputs": ["B07XJ8C8F5"], "options": {"markup_percent": -10}},
        headers=admin_headers,
    )
    assert response.status_code == 422
    assert response.json()["code"] == "validation_error"
