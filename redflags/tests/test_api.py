from __future__ import annotations

from fastapi.testclient import TestClient

from redflags.api.server import app

client = TestClient(app)


def _awards():
    return [
        {"awardId": "A1", "recipientName": "ACME CORP", "awardingAgency": "GSA", "awardAmount": 800000,
         "extentCompeted": "C", "startDate": "2024-01-05"},
        {"awardId": "A2", "recipientName": "OTHER INC", "awardingAgency": "GSA", "awardAmount": 200000,
         "extentCompeted": "A", "startDate": "2024-02-05"},
    ]


def test_list_indicators():
    resp = client.get("/indicators")
    assert resp.status_code == 200
    body = resp.json()
    assert [i["id"] for i in body] == ["R001", "R002", "R003", "R004", "R005", "R006"]
    assert body[3]["config_key"] == "R004_concentration"
    assert body[3]["settings"]["vendor_share_threshold"] == 0.3


def test_signals_endpoint():
    resp = client.post("/signals", json={"awards": _awards(), "indicators": ["R004"]})
    assert resp.status_code == 200
    body = resp.json()
    assert body["summary"]["total_indicators_run"] == 1
    (signal,) = body["signals"]
    assert signal["entity_name"] == "ACME CORP"
    assert signal["value"] == 80.0
    assert signal["severity"] == "high"
    assert signal["affected_awards"] == ["A1"]


def test_signals_query_context_guard():
    resp = client.post(
        "/signals",
        json={"awards": _awards(), "indicators": ["R004"], "query_context": {"recipient": "acme corp"}},
    )
    assert resp.status_code == 200
    assert resp.json()["signals"] == []


def test_findings_endpoint():
    resp = client.post(
        "/findings",
        json={"awards": _awards(), "indicators": ["R002", "R004"], "materiality": {"max_findings": 5}},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert {f["indicator_id"] for f in body["findings"]} == {"R002", "R004"}
    assert all(f["ai_tag"] == "RULE" for f in body["findings"])
    (conv,) = body["convergence"]
    assert conv["entity_name"] == "ACME CORP"
    assert conv["indicators"] == ["R002", "R004"]


def test_unknown_indicator_is_bad_request():
    resp = client.post("/signals", json={"awards": _awards(), "indicators": ["R042"]})
    assert resp.status_code == 400
    assert "R042" in resp.json()["detail"]


def test_invalid_payloads_are_unprocessable():
    assert client.post("/signals", json={"awards": [{"awardAmount": 5}]}).status_code == 422
    assert client.post("/signals", json={"indicators": ["R001"]}).status_code == 422
    resp = client.post("/findings", json={"awards": [], "materiality": {"max_per_indicator": 0}})
    assert resp.status_code == 422


def test_loose_numbers_in_award_rows():
    rows = _awards() + [
        {"awardId": "A3", "recipientName": "GHOST", "awardingAgency": "GSA", "awardAmount": "NaN", "naicsCode": 541330},
    ]
    resp = client.post("/signals", json={"awards": rows, "indicators": ["R004"]})
    assert resp.status_code == 200
    (signal,) = resp.json()["signals"]
    assert signal["entity_name"] == "ACME CORP"
    assert signal["value"] == 80.0


def test_empty_award_id_is_unprocessable():
    rows = _awards()
    rows[0]["awardId"] = ""
    assert client.post("/signals", json={"awards": rows}).status_code == 422
    resp = client.post("/signals", json={"awards": _awards(), "transactions": {"A1": [{"id": 1, "actionDate": []}]}})
    assert resp.status_code == 422
    resp = client.post("/signals", json={"awards": _awards(), "transactions": {"": [{"id": 2}]}})
    assert resp.status_code == 422
    assert "award_id" in resp.json()["detail"]
