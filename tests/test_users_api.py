import pytest
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import encode_hex

from civic_dao.chain.aggregator import ChainReadAggregator
from civic_dao.services.user_profiles import UserProfileService
from civic_dao.store.user_store import UserStore

from conftest import ALICE, BOB, FakeGateway, auth, governance_reads

SIGNER_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"


def _sign_in(client, address=ALICE, **extra):
    r = client.post("/api/users/auth", json=dict({"address": address}, **extra))
    assert r.status_code == 200, r.text
    return r.json()


def _assert_error(r, status, kind):
    assert r.status_code == status, r.text
    assert r.json()["success"] is False
    assert r.json()["error"] == kind


def test_sign_in_registers_then_logs_in(client):
    body = _sign_in(client, ALICE.upper().replace("0X", "0x"))
    assert body["message"] == "Registration successful"
    user = body["data"]["user"]
    assert user["address"] == ALICE
    # refreshed from the identity contract
    assert user["isVerified"] is True
    assert user["isAdmin"] is False
    assert "token" not in body["data"]

    again = _sign_in(client)
    assert again["message"] == "Login successful"
    assert again["data"]["user"]["id"] == user["id"]
    assert again["data"]["user"]["lastLogin"] >= user["lastLogin"]

    assert client.get("/health/summary").json()["users"] == 1


def test_sign_in_keeps_going_when_chain_fails(client, gateway):
    gateway.reads[("zk_identity", "isVerified")] = RuntimeError("node down")
    user = _sign_in(client)["data"]["user"]
    assert user["isVerified"] is False


def test_sign_in_offline(offline_client):
    assert _sign_in(offline_client)["data"]["user"]["isVerified"] is False


def test_sign_in_with_signature(client):
    account = Account.from_key(SIGNER_KEY)
    message = "Sign in to Civic DAO"
    signature = encode_hex(Account.sign_message(encode_defunct(text=message), private_key=SIGNER_KEY).signature)

    body = _sign_in(client, account.address, signature=signature, message=message)
    assert body["data"]["user"]["address"] == account.address.lower()

    r = client.post("/api/users/auth", json={"address": BOB, "signature": signature, "message": message})
    _assert_error(r, 403, "unauthorized")

    r = client.post("/api/users/auth", json={"address": account.address, "signature": signature})
    _assert_error(r, 400, "validation_failed")


@pytest.mark.parametrize("body", [{}, {"address": "0x1234"}, {"address": ALICE, "role": "admin"}])
def test_sign_in_validation(client, body):
    _assert_error(client.post("/api/users/auth", json=body), 400, "validation_failed")


def test_profile_reads_chain_best_effort(client, gateway):
    _assert_error(client.get(f"/api/users/{ALICE}"), 404, "not_found")
    _sign_in(client)

    data = client.get(f"/api/users/{ALICE}").json()["data"]
    assert data["user"]["address"] == ALICE
    assert data["votingPower"]["balance"] == str(1500 * 10**18)
    # no getIdentity read is configured, so that branch fails on its own
    assert data["identity"] is None

    gateway.reads[("zk_identity", "getIdentity")] = {
        "identityHash": "0x" + "ab" * 32,
        "verificationTimestamp": 1_700_000_000,
        "isVerified": True,
        "metadata": "kyc:v1",
        "proofCount": 1,
    }
    gateway.reads[("civic_token", "getVotes")] = RuntimeError("node down")
    data = client.get(f"/api/users/{ALICE}").json()["data"]
    assert data["votingPower"] is None
    assert data["identity"]["proofCount"] == 1


def test_profile_offline(offline_client):
    _sign_in(offline_client)
    data = offline_client.get(f"/api/users/{ALICE}").json()["data"]
    assert data["votingPower"] is None and data["identity"] is None


def test_update_profile(client):
    _sign_in(client)
    body = {"name": "Alice", "email": "alice@example.org"}

    _assert_error(client.put(f"/api/users/{ALICE}", json=body), 401, "auth_required")
    _assert_error(
        client.put(f"/api/users/{ALICE}", json=body, headers=auth("0x" + "3" * 40)), 403, "unauthorized"
    )

    r = client.put(f"/api/users/{ALICE}", json=body, headers=auth())
    assert r.status_code == 200, r.text
    assert r.json()["data"]["name"] == "Alice"

    # admins may edit anyone
    r = client.put(f"/api/users/{ALICE}", json={"name": "Alice J."}, headers=auth(BOB))
    assert r.json()["data"]["name"] == "Alice J."
    assert r.json()["data"]["email"] == "alice@example.org"

    _assert_error(
        client.put(f"/api/users/{ALICE}", json={"isAdmin": True}, headers=auth()), 400, "validation_failed"
    )
    _assert_error(client.put(f"/api/users/{BOB}", json=body, headers=auth(BOB)), 404, "not_found")


def test_admin_list_users(client, gateway):
    _sign_in(client)
    gateway.reads[("zk_identity", "isVerified")] = False
    _sign_in(client, BOB)

    _assert_error(client.get("/api/users"), 401, "auth_required")
    _assert_error(client.get("/api/users", headers=auth()), 403, "unauthorized")

    r = client.get("/api/users", headers=auth(BOB))
    assert r.status_code == 200, r.text
    assert [u["address"] for u in r.json()["data"]] == [ALICE, BOB]
    assert r.json()["pagination"]["total"] == 2

    r = client.get("/api/users", params={"verified": "false"}, headers=auth(BOB))
    assert [u["address"] for u in r.json()["data"]] == [BOB]
    r = client.get("/api/users", params={"search": "1111"}, headers=auth(BOB))
    assert [u["address"] for u in r.json()["data"]] == [ALICE]


def test_admin_sets_verification(client):
    _sign_in(client)
    url = f"/api/users/{ALICE}/verification"

    _assert_error(client.put(url, json={"isVerified": False}, headers=auth()), 403, "unauthorized")
    r = client.put(url, json={"isVerified": False}, headers=auth(BOB))
    assert r.status_code == 200, r.text
    assert r.json()["data"]["isVerified"] is False

    _assert_error(
        client.put(f"/api/users/{'0x' + '3' * 40}/verification", json={"isVerified": True}, headers=auth(BOB)),
        404,
        "not_found",
    )
    _assert_error(client.put(url, json={"isVerified": "maybe"}, headers=auth(BOB)), 400, "validation_failed")


def test_submitted_proof_marks_user_verified(client, gateway):
    gateway.reads[("zk_identity", "isVerified")] = False
    assert _sign_in(client)["data"]["user"]["isVerified"] is False

    r = client.post(
        f"/api/users/{ALICE}/verify",
        json={"identityHash": "0x" + "ab" * 32, "proof": "0xdead", "metadata": "kyc:v1"},
        headers=auth(),
    )
    assert r.status_code == 200, r.text
    assert gateway.sent[-1][1] == "submitProof"
    assert client.get(f"/api/users/{ALICE}").json()["data"]["user"]["isVerified"] is True


def test_profile_deadline_leaves_chain_figures_null():
    users = UserStore()
    users.register_or_login(ALICE)
    agg = ChainReadAggregator(FakeGateway(reads=governance_reads(), delay=0.5), timeout=2.0)
    svc = UserProfileService(users, agg, timeout=0.1)
    try:
        profile = svc.get_profile(ALICE)
    finally:
        svc.close()
        agg.close()
    assert profile.user.address == ALICE
    assert profile.voting_power is None
    assert profile.identity is None
