"""HTTP and WebSocket RPC tests against the FastAPI app."""

import json

import pytest
from fastapi.testclient import TestClient

from spiralarena.arena_server.server import create_app
from spiralarena.arena_server.server_logging.event_log import EventLogger
from spiralarena.tests.helpers import (
    ALICE,
    BALANCED,
    BOB,
    BRITTLE,
    GRAZE,
    ORACLE,
    OWNER,
    words,
)


@pytest.fixture
def client(arena):
    app = create_app()
    app.state.arena = arena
    with TestClient(app) as test_client:
        yield test_client


def _rpc(client, endpoint, **payload):
    return client.post(f"/api/{endpoint}", json=payload)


def _register(client, backer, attributes):
    response = _rpc(client, "combatant.register", actor_id=backer, attributes=attributes)
    assert response.status_code == 200, response.text
    return response.json()["combatant"]["combatant_id"]


def _recv_until(ws, predicate, limit=10):
    for _ in range(limit):
        msg = ws.receive_json()
        if predicate(msg):
            return msg
    raise AssertionError("Did not receive expected frame")


def _full_engagement(client):
    alpha = _register(client, ALICE, BALANCED)
    beta = _register(client, BOB, BRITTLE)
    response = _rpc(
        client,
        "engagement.create",
        actor_id=OWNER,
        engagement_id=1,
        min_participants=2,
        entry_fee=10,
        countdown_delay=60,
    )
    assert response.status_code == 200, response.text
    for backer, cid in ((ALICE, alpha), (BOB, beta)):
        response = _rpc(
            client,
            "engagement.join",
            actor_id=backer,
            combatant_id=cid,
            engagement_id=1,
            paid_amount=10,
        )
        assert response.status_code == 200, response.text
    return alpha, beta


def test_server_status(client):
    response = client.get("/")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "running"
    assert body["combatants"] == 0
    assert body["scenarios"] == ["ambush", "siege", "storm", "blackout", "rout"]


def test_full_engagement_over_http(client, arena):
    alpha, beta = _full_engagement(client)

    response = _rpc(client, "engagement.start", actor_id=OWNER, engagement_id=1)
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["success"] is True
    assert body["request_id"] == "req-1"
    assert body["engagement"]["state"] == "in_progress"

    arena.registry.apply_health(beta, 1)
    response = _rpc(
        client,
        "randomness.fulfill",
        actor_id=ORACLE,
        randomness_request_id="req-1",
        random_words=words(GRAZE),
    )
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["eliminated"] == [beta]
    assert body["survivor_id"] == alpha

    response = _rpc(client, "engagement.status", engagement_id=1, include_rounds=True)
    engagement = response.json()["engagement"]
    assert engagement["state"] == "completed"
    assert engagement["reward_pool"] == 20
    assert engagement["rounds"][0]["eliminated"] == [beta]

    response = _rpc(client, "engagement.claim", actor_id=BOB, engagement_id=1)
    assert response.status_code == 200, response.text
    assert response.json() == {
        "success": True,
        "engagement_id": 1,
        "amount": 20,
        "backer_id": ALICE,
    }
    assert arena.custody.balance_of(ALICE) == 20

    response = _rpc(client, "engagement.claim", actor_id=ALICE, engagement_id=1)
    assert response.status_code == 402
    assert response.headers["x-arena-error"] == "nothing_to_claim"


def test_replayed_fulfillment_rejected(client):
    _full_engagement(client)
    _rpc(client, "engagement.start", actor_id=OWNER, engagement_id=1)
    payload = dict(actor_id=ORACLE, randomness_request_id="req-1", random_words=words(GRAZE))

    assert _rpc(client, "randomness.fulfill", **payload).status_code == 200
    response = _rpc(client, "randomness.fulfill", **payload)

    assert response.status_code == 409
    assert response.headers["x-arena-error"] == "unknown_request"


def test_only_oracle_may_fulfill(client):
    _full_engagement(client)
    _rpc(client, "engagement.start", actor_id=OWNER, engagement_id=1)

    response = _rpc(
        client,
        "randomness.fulfill",
        actor_id=ALICE,
        randomness_request_id="req-1",
        random_words=words(GRAZE),
    )

    assert response.status_code == 403
    assert response.headers["x-arena-error"] == "not_authorized"


def test_non_owner_cannot_create(client):
    response = _rpc(
        client, "engagement.create", actor_id=ALICE, engagement_id=1, min_participants=2
    )
    assert response.status_code == 403
    assert response.headers["x-arena-error"] == "not_authorized"


def test_validation_errors_carry_codes(client):
    response = _rpc(client, "combatant.register", actor_id=ALICE, attributes=[5] * 9 + [4])
    assert response.status_code == 400
    assert response.headers["x-arena-error"] == "attributes_sum_invalid"

    response = _rpc(client, "combatant.register", actor_id=ALICE, attributes="5555")
    assert response.status_code == 400


def test_reserved_actor_rejected(client):
    _full_engagement(client)
    response = _rpc(client, "engagement.start", actor_id="arena:self", engagement_id=1)
    assert response.status_code == 403


def test_missing_actor_rejected(client):
    response = _rpc(client, "engagement.start", engagement_id=1)
    assert response.status_code == 400


def test_unknown_endpoint(client):
    assert _rpc(client, "engagement.explode").status_code == 404


def test_invalid_json_body(client):
    response = client.post(
        "/api/combatant.register",
        content=b"{nope",
        headers={"content-type": "application/json"},
    )
    assert response.status_code == 400


def test_status_filters_by_state(client):
    _rpc(client, "engagement.create", actor_id=OWNER, engagement_id=1, min_participants=2)
    _rpc(client, "engagement.create", actor_id=OWNER, engagement_id=2, min_participants=3)

    response = _rpc(client, "engagement.status", state="ready")
    assert [e["engagement_id"] for e in response.json()["engagements"]] == [1, 2]

    response = _rpc(client, "engagement.status", state="completed")
    assert response.json()["engagements"] == []

    assert _rpc(client, "engagement.status", state="exploded").status_code == 400


def test_combatant_info(client):
    cid = _register(client, ALICE, BALANCED)

    response = _rpc(client, "combatant.info", combatant_id=cid)
    assert response.json()["combatant"]["health"] == 20
    assert response.json()["combatant"]["state"] == "not_ready"

    response = _rpc(client, "combatant.info", backer_id=ALICE)
    assert [c["combatant_id"] for c in response.json()["combatants"]] == [cid]

    assert _rpc(client, "combatant.info", combatant_id="missing").status_code == 404


def test_websocket_rpc_and_events(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_text(json.dumps({"id": "1", "type": "identify", "backer_id": ALICE}))
        identify = ws.receive_json()
        assert identify["ok"] is True

        ws.send_text(
            json.dumps(
                {
                    "id": "2",
                    "type": "rpc",
                    "endpoint": "engagement.create",
                    "payload": {"actor_id": ALICE, "engagement_id": 1, "min_participants": 2},
                }
            )
        )
        error = _recv_until(ws, lambda m: m.get("id") == "2")
        assert error["ok"] is False
        assert error["error"]["status"] == 403
        assert error["error"]["code"] == "not_authorized"

        ws.send_text(
            json.dumps(
                {
                    "id": "3",
                    "type": "rpc",
                    "endpoint": "engagement.create",
                    "payload": {"actor_id": OWNER, "engagement_id": 1, "min_participants": 2},
                }
            )
        )
        event = _recv_until(ws, lambda m: m.get("frame_type") == "event")
        assert event["event"] == "engagement.created"
        assert event["payload"]["engagement_id"] == 1

        response = _recv_until(ws, lambda m: m.get("id") == "3")
        assert response["ok"] is True
        assert response["result"]["engagement"]["state"] == "ready"


def test_websocket_rejects_unknown_frame_type(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_text(json.dumps({"id": "9", "type": "shout"}))
        frame = ws.receive_json()
        assert frame["ok"] is False
        assert frame["error"]["status"] == 400


def test_websocket_identify_lists_backer_combatants(client):
    cid = _register(client, ALICE, BALANCED)
    with client.websocket_connect("/ws") as ws:
        ws.send_text(json.dumps({"id": "1", "type": "identify", "backer_id": ALICE}))
        identify = ws.receive_json()

    assert identify["ok"] is True
    assert identify["result"]["backer_id"] == ALICE
    assert identify["result"]["combatants"] == [cid]
    assert identify["result"]["engagements"] == []


def test_websocket_identify_rejects_reserved_backer(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_text(json.dumps({"id": "1", "type": "identify", "backer_id": "arena:self"}))
        frame = ws.receive_json()
        assert frame["ok"] is False
        assert frame["error"]["status"] == 400

        ws.send_text(json.dumps({"id": "2", "type": "identify", "backer_id": BOB}))
        assert ws.receive_json()["ok"] is True


def test_event_query_scopes_backers_to_their_events(client, arena, tmp_path):
    arena.event_dispatcher.set_event_logger(EventLogger(tmp_path / "events.jsonl"))
    _full_engagement(client)

    response = _rpc(client, "event.query", actor_id=OWNER, engagement_id=1)
    assert response.status_code == 200, response.text
    body = response.json()
    assert [e["event"] for e in body["events"]] == [
        "engagement.created",
        "engagement.joined",
        "engagement.joined",
    ]
    assert body["truncated"] is False

    response = _rpc(client, "event.query", actor_id=ALICE)
    events = response.json()["events"]
    assert [e["event"] for e in events] == ["engagement.joined"]
    assert events[0]["sender"] == ALICE

    response = _rpc(client, "event.query", actor_id=ALICE, backer_id=BOB)
    assert response.status_code == 403
    assert response.headers["x-arena-error"] == "not_authorized"

    response = _rpc(client, "event.query", actor_id=OWNER, limit=1, sort_direction="reverse")
    body = response.json()
    assert body["count"] == 1
    assert body["truncated"] is True
    assert body["events"][0]["sender"] == BOB

    response = _rpc(client, "event.query", actor_id=OWNER, sort_direction="sideways")
    assert response.status_code == 400


def test_event_query_requires_event_log(client):
    response = _rpc(client, "event.query", actor_id=OWNER)
    assert response.status_code == 503
