import pytest
from fastapi.testclient import TestClient

from backend.app import create_app
from sanctuary.config import Settings
from sanctuary.llm import EchoGateway


@pytest.fixture
def client(data_dir):
    app = create_app(data_dir=data_dir, gateway=EchoGateway(), settings=Settings())
    return TestClient(app)


@pytest.fixture
def journey_id(client):
    return client.post("/api/journeys").json()["journey_id"]


def test_health(client):
    assert client.get("/api/health").json() == {"status": "ok"}


def test_world(client):
    body = client.get("/api/world").json()
    assert body["start_landmark"] == "sanctuary_heart"
    assert [c["id"] for c in body["companions"]] == ["elara", "bramble", "kael"]
    assert len(body["landmarks"]) == 5


# ── Journey lifecycle ────────────────────────────────────────


def test_start_journey(client):
    res = client.post("/api/journeys")
    assert res.status_code == 200
    body = res.json()
    assert body["is_active"] is True
    assert body["busy"] is False
    assert body["state"]["message_counter"] == 0
    assert body["state"]["current_landmark"] == "sanctuary_heart"


def test_starting_a_journey_ends_the_previous_one(client, journey_id):
    second = client.post("/api/journeys").json()["journey_id"]
    listed = {j["journey_id"]: j["is_active"] for j in client.get("/api/journeys").json()}
    assert listed == {journey_id: False, second: True}


def test_chatting_on_an_ended_journey_keeps_it_ended(client, journey_id):
    second = client.post("/api/journeys").json()["journey_id"]

    res = client.post(f"/api/journeys/{journey_id}/chat", json={"message": "Hi there!"})
    assert res.status_code == 200

    listed = {j["journey_id"]: j["is_active"] for j in client.get("/api/journeys").json()}
    assert listed == {journey_id: False, second: True}
    assert client.get(f"/api/journeys/{journey_id}").json()["is_active"] is False
    assert client.post("/api/journeys/resume").json()["journey_id"] == second


def test_resume_latest_active(client, journey_id):
    res = client.post("/api/journeys/resume")
    assert res.status_code == 200
    assert res.json()["journey_id"] == journey_id


def test_resume_without_journey(client):
    assert client.post("/api/journeys/resume").status_code == 404


def test_get_journey(client, journey_id):
    body = client.get(f"/api/journeys/{journey_id}").json()
    assert body["journey_id"] == journey_id


@pytest.mark.parametrize("bad_id", ["missing", "bad%20id"])
def test_get_unknown_journey(client, bad_id):
    assert client.get(f"/api/journeys/{bad_id}").status_code == 404


def test_delete_journey(client, journey_id):
    assert client.delete(f"/api/journeys/{journey_id}").json() == {"ok": True}
    assert client.get(f"/api/journeys/{journey_id}").status_code == 404
    assert client.get("/api/journeys").json() == []


# ── Turns ────────────────────────────────────────────────────


def test_chat_turn(client, journey_id):
    res = client.post(f"/api/journeys/{journey_id}/chat", json={"message": "Hi there!"})
    assert res.status_code == 200
    body = res.json()
    assert body["message_counter"] == 1
    assert body["responders"] == ["elara"]
    assert body["utterances"][0]["text"] == "Elara listens closely in The Sanctuary Heart."


def test_chat_requires_message(client, journey_id):
    assert client.post(f"/api/journeys/{journey_id}/chat", json={}).status_code == 422


def test_chat_state_survives_restart(data_dir, journey_id, client):
    client.post(f"/api/journeys/{journey_id}/chat", json={"message": "Hi there!"})

    fresh = TestClient(create_app(data_dir=data_dir, gateway=EchoGateway(), settings=Settings()))
    body = fresh.post("/api/journeys/resume").json()
    assert body["journey_id"] == journey_id
    assert body["state"]["message_counter"] == 1


def test_messages_log(client, journey_id):
    client.post(f"/api/journeys/{journey_id}/chat", json={"message": "Hi there!"})
    entries = client.get(f"/api/journeys/{journey_id}/messages").json()
    assert [e["type"] for e in entries] == ["player", "companion", "decision"]


# ── Moves & reset ────────────────────────────────────────────


def test_move(client, journey_id):
    res = client.post(f"/api/journeys/{journey_id}/move", json={"landmark": "healing_springs"})
    assert res.json() == {"moved": True, "current_landmark": "healing_springs"}
    again = client.post(f"/api/journeys/{journey_id}/move", json={"landmark": "healing_springs"})
    assert again.json()["moved"] is False


def test_move_unknown_landmark(client, journey_id):
    res = client.post(f"/api/journeys/{journey_id}/move", json={"landmark": "atlantis"})
    assert res.status_code == 400


def test_reset(client, journey_id):
    client.post(f"/api/journeys/{journey_id}/chat", json={"message": "Hi there!"})
    body = client.post(f"/api/journeys/{journey_id}/reset").json()
    assert body["journey_id"] == journey_id
    assert body["state"]["message_counter"] == 0
