# tests/test_claims.py
# Claim submission with documents and the staff decision.

from http import HTTPStatus

import pytest

pytestmark = pytest.mark.unit


def _submit(client, headers, policy_id, files, reason="Hospital bill"):
    return client.post(
        "/claims",
        data={"policy_id": str(policy_id), "reason": reason},
        files=files,
        headers=headers,
    )


def test_submit_claim_stores_documents(client, employee, active_policy, pdf_files, query, upload_dir):
    r = _submit(client, employee["headers"], active_policy["policy_id"], pdf_files("bill.pdf", "id.pdf"))
    assert r.status_code == HTTPStatus.CREATED, r.text
    j = r.json()
    assert j["status"] == "pending"
    assert j["documents"] == ["bill.pdf", "id.pdf"]

    docs = query("SELECT * FROM claim_documents WHERE claim_id=? ORDER BY position", (j["claim_id"],))
    assert [d["position"] for d in docs] == [1, 2]
    assert [d["original_name"] for d in docs] == ["bill.pdf", "id.pdf"]
    for d in docs:
        assert d["stored_path"].startswith(str(upload_dir))
        assert d["size_bytes"] > 0

    # Submitting leaves the policy status alone
    assert query("SELECT status FROM policies")[0]["status"] == "active"


def test_claim_without_documents_is_400_and_writes_nothing(client, employee, active_policy, query, upload_dir):
    r = _submit(client, employee["headers"], active_policy["policy_id"], None)
    assert r.status_code == HTTPStatus.BAD_REQUEST
    assert query("SELECT COUNT(*) AS n FROM claims")[0]["n"] == 0
    assert not any(upload_dir.rglob("*.*"))


def test_claim_without_reason_is_400(client, employee, active_policy, pdf_files):
    r = _submit(client, employee["headers"], active_policy["policy_id"], pdf_files("a.pdf"), reason="  ")
    assert r.status_code == HTTPStatus.BAD_REQUEST


def test_empty_document_is_400(client, employee, active_policy):
    files = [("documents", ("empty.pdf", b"", "application/pdf"))]
    r = _submit(client, employee["headers"], active_policy["policy_id"], files)
    assert r.status_code == HTTPStatus.BAD_REQUEST


def test_too_many_documents_is_400(client, employee, active_policy, pdf_files, monkeypatch):
    from policyadmin.services import config
    monkeypatch.setattr(config, "UPLOAD_MAX_FILES", 2)
    r = _submit(client, employee["headers"], active_policy["policy_id"], pdf_files("a.pdf", "b.pdf", "c.pdf"))
    assert r.status_code == HTTPStatus.BAD_REQUEST


def test_second_pending_claim_is_409(client, employee, active_policy, pdf_files):
    pid = active_policy["policy_id"]
    assert _submit(client, employee["headers"], pid, pdf_files("a.pdf")).status_code == HTTPStatus.CREATED
    r = _submit(client, employee["headers"], pid, pdf_files("b.pdf"))
    assert r.status_code == HTTPStatus.CONFLICT


def test_client_claims_on_own_policy_only(client, customer, make_user, pdf_files):
    r = client.post("/policies", json={"policy_type": "life"}, headers=customer["headers"])
    pid = r.json()["policy_id"]

    other = make_user("client")
    assert _submit(client, other["headers"], pid, pdf_files("a.pdf")).status_code == HTTPStatus.NOT_FOUND
    assert _submit(client, customer["headers"], pid, pdf_files("a.pdf")).status_code == HTTPStatus.CREATED


def test_claim_on_missing_policy_is_404(client, employee, pdf_files):
    r = _submit(client, employee["headers"], 999, pdf_files("a.pdf"))
    assert r.status_code == HTTPStatus.NOT_FOUND


def test_approve_claims_the_policy(client, employee, active_policy, pdf_files, query, sms):
    claim = _submit(client, employee["headers"], active_policy["policy_id"], pdf_files("a.pdf")).json()
    sms.sent.clear()

    r = client.post(f"/claims/{claim['claim_id']}/decision", json={"decision": "approve"}, headers=employee["headers"])
    assert r.status_code == HTTPStatus.OK, r.text
    assert r.json()["status"] == "approved"
    assert r.json()["policy_status"] == "claimed"

    p = query("SELECT status, deactivation_reason FROM policies")[0]
    assert p == {"status": "claimed", "deactivation_reason": "Hospital bill"}
    c = query("SELECT status, decided_by FROM claims")[0]
    assert c == {"status": "approved", "decided_by": employee["id"]}
    assert len(sms.sent) == 1 and sms.sent[0][0] == "0744444444"

    # Decided claims stay decided
    r = client.post(f"/claims/{claim['claim_id']}/decision", json={"decision": "reject"}, headers=employee["headers"])
    assert r.status_code == HTTPStatus.CONFLICT
    assert query("SELECT status FROM claims")[0]["status"] == "approved"


def test_reject_keeps_policy_active(client, employee, active_policy, pdf_files, query):
    claim = _submit(client, employee["headers"], active_policy["policy_id"], pdf_files("a.pdf")).json()
    r = client.post(f"/claims/{claim['claim_id']}/decision", json={"decision": "reject"}, headers=employee["headers"])
    assert r.status_code == HTTPStatus.OK
    assert r.json()["policy_status"] == "active"
    assert query("SELECT status FROM policies")[0]["status"] == "active"

    # A new claim may follow a rejected one
    r = _submit(client, employee["headers"], active_policy["policy_id"], pdf_files("b.pdf"))
    assert r.status_code == HTTPStatus.CREATED


def test_decision_validation_and_roles(client, employee, customer, active_policy, pdf_files):
    claim = _submit(client, employee["headers"], active_policy["policy_id"], pdf_files("a.pdf")).json()
    url = f"/claims/{claim['claim_id']}/decision"
    assert client.post(url, json={"decision": "maybe"}, headers=employee["headers"]).status_code == 400
    assert client.post(url, json={"decision": "approve"}, headers=customer["headers"]).status_code == 403
    assert client.post("/claims/999/decision", json={"decision": "approve"},
                       headers=employee["headers"]).status_code == 404


def test_claim_on_terminal_policy_is_409(client, employee, active_policy, pdf_files):
    pid = active_policy["policy_id"]
    r = client.post(f"/policies/{pid}/deactivate", data={"reason": "deceased"},
                    files=pdf_files("cert.pdf"), headers=employee["headers"])
    assert r.status_code == HTTPStatus.OK
    assert _submit(client, employee["headers"], pid, pdf_files("a.pdf")).status_code == HTTPStatus.CONFLICT


def test_detail_lists_claim_documents_without_paths(client, employee, active_policy, pdf_files):
    _submit(client, employee["headers"], active_policy["policy_id"], pdf_files("bill.pdf"))
    j = client.get(f"/policies/{active_policy['policy_id']}", headers=employee["headers"]).json()
    assert len(j["claims"]) == 1
    docs = j["claims"][0]["documents"]
    assert [d["original_name"] for d in docs] == ["bill.pdf"]
    assert "stored_path" not in docs[0]


def test_too_many_parts_rejected_before_reading(monkeypatch):
    from policyadmin.api.policies_api import read_uploads
    from policyadmin.services import config
    from policyadmin.services.errors import ValidationError

    class Unreadable:
        def read(self, *a):
            raise AssertionError("part should not be read")

    class Part:
        filename = "x.pdf"
        content_type = "application/pdf"
        file = Unreadable()

    monkeypatch.setattr(config, "UPLOAD_MAX_FILES", 2)
    with pytest.raises(ValidationError):
        read_uploads([Part(), Part(), Part()])
