# tests/test_policies_create.py
# Policy creation: who may create what, initial status, atomicity and numbering.

import re
from http import HTTPStatus

import pymysql
import pytest

from policyadmin.services import config, lifecycle

pytestmark = pytest.mark.unit

FUNERAL = {
    "policy_type": "funeral",
    "holder_phone": "0711111111",
    "beneficiaries": [{"name": "Jane", "relation": "spouse"}],
}


def test_public_funeral_policy(client, query, sms):
    r = client.post("/public-policy", json=FUNERAL)
    assert r.status_code == HTTPStatus.CREATED, r.text
    j = r.json()
    assert re.match(r"^POL-\d+$", j["policy_number"])
    assert j["status"] == "pending"

    policies = query("SELECT * FROM policies")
    assert len(policies) == 1
    assert policies[0]["user_id"] is None
    assert policies[0]["policy_number"] == j["policy_number"]

    bens = query("SELECT * FROM beneficiaries WHERE policy_id=?", (j["policy_id"],))
    assert [(b["name"], b["relation"]) for b in bens] == [("Jane", "spouse")]

    assert len(sms.sent) == 1
    assert sms.sent[0][0] == "0711111111"
    assert j["policy_number"] in sms.sent[0][1]


def test_form_style_aliases_accepted(client, query):
    r = client.post(
        "/policies",
        json={"type": "funeral", "premium": "99.50", "name": "Jane", "contact": "0711111111",
              "beneficiaries": [{"name": "Ben", "relation": "son", "idNumber": "9001015009087"}]},
    )
    assert r.status_code == HTTPStatus.CREATED, r.text
    p = query("SELECT holder_name, holder_phone FROM policies")[0]
    assert p == {"holder_name": "Jane", "holder_phone": "0711111111"}
    assert query("SELECT id_number FROM beneficiaries")[0]["id_number"] == "9001015009087"


def test_client_owns_created_policy(client, customer, query, sms):
    r = client.post("/policies", json={"policy_type": "life"}, headers=customer["headers"])
    assert r.status_code == HTTPStatus.CREATED, r.text
    assert r.json()["status"] == "active"

    p = query("SELECT * FROM policies")[0]
    assert p["user_id"] == customer["id"]
    assert p["created_by"] is None
    # Holder details default to the owner's profile
    assert p["holder_name"] == "Thandi"
    assert p["holder_phone"] == "0733333333"
    assert sms.sent[0][0] == "0733333333"


def test_client_cannot_create_for_someone_else(client, customer, make_user, query):
    other = make_user("client")
    r = client.post(
        "/policies",
        json={"policy_type": "life", "owner_user_id": other["id"]},
        headers=customer["headers"],
    )
    assert r.status_code == HTTPStatus.FORBIDDEN
    assert query("SELECT COUNT(*) AS n FROM policies")[0]["n"] == 0


def test_staff_creates_for_owner(client, employee, customer, query):
    r = client.post(
        "/create-policy",
        json={"policy_type": "funeral", "ownerUserId": customer["id"], "premium_amount": "120.00"},
        headers=employee["headers"],
    )
    assert r.status_code == HTTPStatus.CREATED, r.text
    p = query("SELECT * FROM policies")[0]
    assert p["user_id"] == customer["id"]
    assert p["created_by"] == employee["id"]
    assert p["status"] == "active"


def test_staff_owner_must_exist(client, employee):
    r = client.post(
        "/create-policy",
        json={"policy_type": "funeral", "owner_user_id": 9999, "holder_phone": "0711111111"},
        headers=employee["headers"],
    )
    assert r.status_code == HTTPStatus.NOT_FOUND


def test_create_policy_route_is_staff_only(client, customer):
    r = client.post("/create-policy", json=FUNERAL, headers=customer["headers"])
    assert r.status_code == HTTPStatus.FORBIDDEN
    assert client.post("/create-policy", json=FUNERAL).status_code == HTTPStatus.UNAUTHORIZED


def test_anonymous_cannot_name_owner(client, customer):
    r = client.post("/public-policy", json={**FUNERAL, "owner_user_id": customer["id"]})
    assert r.status_code == HTTPStatus.FORBIDDEN


@pytest.mark.parametrize(
    "body",
    [
        {"holder_phone": "0711111111"},                                   # no type
        {"policy_type": "  ", "holder_phone": "0711111111"},              # blank type
        {"policy_type": "funeral"},                                       # no phone, no owner
        {"policy_type": "funeral", "holder_phone": "07", "premium_amount": "-1"},
        {"policy_type": "funeral", "holder_phone": "07", "beneficiaries": [{"relation": "son"}]},
    ],
)
def test_invalid_input_is_400_and_writes_nothing(client, query, sms, body):
    r = client.post("/public-policy", json=body)
    assert r.status_code == HTTPStatus.BAD_REQUEST, r.text
    assert query("SELECT COUNT(*) AS n FROM policies")[0]["n"] == 0
    assert sms.sent == []


def test_beneficiary_failure_rolls_back_policy(client, query, sms, monkeypatch):
    real = lifecycle._insert_beneficiary
    calls = {"n": 0}

    def flaky(cur, policy_id, beneficiary):
        calls["n"] += 1
        if calls["n"] == 2:
            raise pymysql.err.OperationalError(2013, "Lost connection to MySQL server during query")
        return real(cur, policy_id, beneficiary)

    monkeypatch.setattr(lifecycle, "_insert_beneficiary", flaky)
    body = {**FUNERAL, "beneficiaries": [{"name": "A"}, {"name": "B"}, {"name": "C"}]}
    r = client.post("/public-policy", json=body)
    assert r.status_code == HTTPStatus.INTERNAL_SERVER_ERROR
    assert query("SELECT COUNT(*) AS n FROM policies")[0]["n"] == 0
    assert query("SELECT COUNT(*) AS n FROM beneficiaries")[0]["n"] == 0
    assert sms.sent == []


def test_number_collision_is_retried(client, query, monkeypatch):
    numbers = iter(["POL-1111111111", "POL-1111111111", "POL-2222222222"])
    monkeypatch.setattr(lifecycle, "generate_policy_number", lambda: next(numbers))

    assert client.post("/public-policy", json=FUNERAL).status_code == HTTPStatus.CREATED
    r = client.post("/public-policy", json=FUNERAL)
    assert r.status_code == HTTPStatus.CREATED
    assert r.json()["policy_number"] == "POL-2222222222"

    rows = query("SELECT policy_number FROM policies ORDER BY id")
    assert [x["policy_number"] for x in rows] == ["POL-1111111111", "POL-2222222222"]


def test_number_collisions_exhausted_is_500(client, query, monkeypatch):
    monkeypatch.setattr(lifecycle, "generate_policy_number", lambda: "POL-1111111111")
    monkeypatch.setattr(config, "POLICY_NUMBER_MAX_ATTEMPTS", 3)

    assert client.post("/public-policy", json=FUNERAL).status_code == HTTPStatus.CREATED
    r = client.post("/public-policy", json=FUNERAL)
    assert r.status_code == HTTPStatus.INTERNAL_SERVER_ERROR
    assert r.json()["detail"] == "Could not allocate a unique policy number"
    assert query("SELECT COUNT(*) AS n FROM policies")[0]["n"] == 1
    assert query("SELECT COUNT(*) AS n FROM beneficiaries")[0]["n"] == 1


def test_policy_numbers_unique_across_creates(client, query):
    for _ in range(10):
        assert client.post("/public-policy", json=FUNERAL).status_code == HTTPStatus.CREATED
    rows = query("SELECT policy_number FROM policies")
    assert len({r["policy_number"] for r in rows}) == 10


def test_self_service_flat_beneficiary_fields(client, query):
    r = client.post(
        "/public-policy",
        json={"name": "Jane", "phone": "0711111111", "type": "funeral", "b_name": "Ben", "b_relation": "son"},
    )
    assert r.status_code == HTTPStatus.CREATED, r.text
    bens = query("SELECT name, relation FROM beneficiaries WHERE policy_id=?", (r.json()["policy_id"],))
    assert bens == [{"name": "Ben", "relation": "son"}]


def test_staff_form_beneficiary_name(client, employee, query):
    r = client.post(
        "/create-policy",
        json={"holder_name": "Sipho", "holder_phone": "0744444444", "policy_type": "funeral",
              "beneficiary_name": "Lerato"},
        headers=employee["headers"],
    )
    assert r.status_code == HTTPStatus.CREATED, r.text
    bens = query("SELECT name, relation FROM beneficiaries WHERE policy_id=?", (r.json()["policy_id"],))
    assert bens == [{"name": "Lerato", "relation": None}]


def test_beneficiaries_list_wins_over_flat_fields(client, query):
    r = client.post("/public-policy", json={**FUNERAL, "b_name": "Ignored"})
    assert r.status_code == HTTPStatus.CREATED
    assert [b["name"] for b in query("SELECT name FROM beneficiaries")] == ["Jane"]
