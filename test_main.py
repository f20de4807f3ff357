import importlib

import pytest
from fastapi.testclient import TestClient

from conftest import register_and_login
from main import create_app


@pytest.fixture
def organizer(client):
    _, headers = register_and_login(client, "organizer@example.com", "organizer")
    return headers


@pytest.fixture
def speakers(client):
    s1, _ = register_and_login(client, "speaker1@example.com", "speaker")
    s2, _ = register_and_login(client, "speaker2@example.com", "speaker")
    return s1, s2


@pytest.fixture
def rooms(client, organizer):
    for num in (101, 102):
        client.post("/rooms", json={"room_num": num, "capacity": 50}, headers=organizer)
    return 101, 102


def create_event(client, headers, title, time, room_num, speaker_id):
    return client.post("/events", json={
        "title": title,
        "time": time,
        "room_num": room_num,
        "speaker_id": speaker_id,
    }, headers=headers)


def test_register_user(client):
    response = client.post("/register", json={
        "username": "attendee@example.com",
        "password": "password123",
        "role": "attendee"
    })
    assert response.status_code == 201
    assert response.json()["message"] == "User registered"


def test_register_duplicate_user(client):
    payload = {"username": "dup@example.com", "password": "password123", "role": "attendee"}
    client.post("/register", json=payload)
    response = client.post("/register", json=payload)
    assert response.status_code == 400


def test_login_success(client):
    register_and_login(client, "organizer@example.com", "organizer")
    response = client.post("/login", json={"username": "organizer@example.com", "password": "password123"})
    assert response.status_code == 200
    assert "access_token" in response.json()
    assert "refresh_token" in response.json()


def test_login_wrong_password(client):
    register_and_login(client, "organizer@example.com", "organizer")
    response = client.post("/login", json={"username": "organizer@example.com", "password": "nope"})
    assert response.status_code == 401


def test_refresh_token(client):
    register_and_login(client, "organizer@example.com", "organizer")
    tokens = client.post("/login", json={"username": "organizer@example.com", "password": "password123"}).json()
    response = client.post("/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert response.status_code == 200
    assert "access_token" in response.json()["data"]
    # an access token is not a refresh token
    response = client.post("/refresh", json={"refresh_token": tokens["access_token"]})
    assert response.status_code == 401


def test_create_room_requires_organizer(client):
    _, attendee = register_and_login(client, "attendee@example.com", "attendee")
    response = client.post("/rooms", json={"room_num": 101, "capacity": 50}, headers=attendee)
    assert response.status_code == 403


def test_create_duplicate_room(client, organizer):
    client.post("/rooms", json={"room_num": 101, "capacity": 50}, headers=organizer)
    response = client.post("/rooms", json={"room_num": 101, "capacity": 20}, headers=organizer)
    assert response.status_code == 400


def test_schedule_conflicts(client, organizer, speakers, rooms):
    s1, s2 = speakers
    r1, r2 = rooms
    response = create_event(client, organizer, "Event1", "2020-01-01T12:00", r1, s1)
    assert response.status_code == 201
    assert response.json()["message"] == "Event created"
    assert create_event(client, organizer, "Event2", "2020-01-01T16:00", r1, s1).status_code == 201
    assert create_event(client, organizer, "Event3", "2020-01-01T12:00", r2, s1).status_code == 409
    assert create_event(client, organizer, "Event4", "2020-01-01T12:00", r1, s2).status_code == 409
    titles = [e["title"] for e in client.get("/events").json()["data"]]
    assert titles == ["Event1", "Event2"]


def test_create_event_unknown_room_or_speaker(client, organizer, speakers, rooms):
    s1, _ = speakers
    assert create_event(client, organizer, "Event1", "2020-01-01T12:00", 999, s1).status_code == 400
    assert create_event(client, organizer, "Event1", "2020-01-01T12:00", rooms[0], "nobody").status_code == 400


def test_create_event_invalid_time(client, organizer, speakers, rooms):
    response = create_event(client, organizer, "Event1", "not a date", rooms[0], speakers[0])
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid date format"


def test_update_event(client, organizer, speakers, rooms):
    s1, s2 = speakers
    r1, r2 = rooms
    e1 = create_event(client, organizer, "Event1", "2020-01-01T12:00", r1, s1).json()["data"]["id"]
    create_event(client, organizer, "Event2", "2020-01-01T16:00", r1, s2)

    response = client.put(f"/events/{e1}", json={"time": "2020-01-01T16:00"}, headers=organizer)
    assert response.status_code == 409
    response = client.put(f"/events/{e1}", json={"time": "2020-01-01T16:00", "speaker_id": s2}, headers=organizer)
    assert response.status_code == 409

    response = client.put(f"/events/{e1}", json={"room_num": r2, "title": "Keynote"}, headers=organizer)
    assert response.status_code == 200
    data = response.json()["data"]
    assert (data["room_num"], data["title"], data["time"]) == (r2, "Keynote", "2020-01-01T12:00:00")

    response = client.put(f"/events/{e1}", json={"speaker_id": s2}, headers=organizer)
    assert response.status_code == 200
    assert response.json()["data"]["speaker_id"] == s2


def test_update_unknown_event(client, organizer):
    response = client.put("/events/missing", json={"title": "x"}, headers=organizer)
    assert response.status_code == 404


def test_delete_event(client, organizer, speakers, rooms):
    e1 = create_event(client, organizer, "Event1", "2020-01-01T12:00", rooms[0], speakers[0]).json()["data"]["id"]
    assert client.delete(f"/events/{e1}", headers=organizer).status_code == 200
    assert client.delete(f"/events/{e1}", headers=organizer).status_code == 404
    assert client.get(f"/events/{e1}").status_code == 404


def test_sign_up_and_my_events(client, organizer, speakers, rooms):
    s1, _ = speakers
    e1 = create_event(client, organizer, "Event1", "2020-01-01T12:00", rooms[0], s1).json()["data"]["id"]
    e2 = create_event(client, organizer, "Event2", "2020-01-01T16:00", rooms[0], s1).json()["data"]["id"]
    create_event(client, organizer, "Event3", "2020-01-02T09:00", rooms[1], s1)
    _, attendee = register_and_login(client, "attendee@example.com", "attendee")

    assert client.post(f"/events/{e1}/attendees", headers=attendee).status_code == 200
    assert client.post(f"/events/{e1}/attendees", headers=attendee).status_code == 400
    assert client.post(f"/events/{e2}/attendees", headers=attendee).status_code == 200

    response = client.get("/me/events", headers=attendee)
    assert [e["id"] for e in response.json()["data"]] == [e1, e2]

    assert client.delete(f"/events/{e1}/attendees", headers=attendee).status_code == 200
    assert client.delete(f"/events/{e1}/attendees", headers=attendee).status_code == 400
    response = client.get("/me/events", headers=attendee)
    assert [e["id"] for e in response.json()["data"]] == [e2]


def test_my_talks(client, organizer, rooms):
    s1, speaker = register_and_login(client, "speaker@example.com", "speaker")
    create_event(client, organizer, "Talk", "2020-01-01T12:00", rooms[0], s1)
    response = client.get("/me/talks", headers=speaker)
    assert [e["title"] for e in response.json()["data"]] == ["Talk"]
    assert client.get("/me/talks", headers=organizer).status_code == 403


def test_export_attendees(client, organizer, speakers, rooms):
    e1 = create_event(client, organizer, "Event1", "2020-01-01T12:00", rooms[0], speakers[0]).json()["data"]["id"]
    attendee_id, attendee = register_and_login(client, "attendee@example.com", "attendee")
    client.post(f"/events/{e1}/attendees", headers=attendee)
    response = client.get(f"/events/{e1}/attendees/export", headers=organizer)
    assert response.status_code == 200
    lines = response.text.strip().splitlines()
    assert lines[0] == "ID,Username,Name"
    assert lines[1].startswith(f"{attendee_id},attendee@example.com")


def test_requires_token(client):
    response = client.post("/events", json={
        "title": "Event1", "time": "2020-01-01T12:00", "room_num": 101, "speaker_id": "x"
    })
    assert response.status_code == 401


def test_schedule_survives_restart(settings):
    with TestClient(create_app(settings)) as client:
        _, organizer = register_and_login(client, "organizer@example.com", "organizer")
        s1, _ = register_and_login(client, "speaker1@example.com", "speaker")
        client.post("/rooms", json={"room_num": 101, "capacity": 50}, headers=organizer)
        e1 = create_event(client, organizer, "Event1", "2020-01-01T12:00", 101, s1).json()["data"]["id"]
        attendee_id, attendee = register_and_login(client, "attendee@example.com", "attendee")
        client.post(f"/events/{e1}/attendees", headers=attendee)

    with TestClient(create_app(settings)) as client:
        events = client.get("/events").json()["data"]
        assert [(e["id"], e["attendee_count"]) for e in events] == [(e1, 1)]
        _, organizer = register_and_login(client, "organizer2@example.com", "organizer")
        assert create_event(client, organizer, "Clash", "2020-01-01T12:00", 101, s1).status_code == 409


def test_time_with_utc_offset_is_rejected(client, organizer, speakers, rooms):
    s1, s2 = speakers
    e1 = create_event(client, organizer, "Event1", "2020-01-01T12:00", rooms[0], s1).json()["data"]["id"]
    response = create_event(client, organizer, "Event2", "2020-01-01T12:00+00:00", rooms[0], s2)
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid date format"
    response = client.put(f"/events/{e1}", json={"time": "2020-01-01T16:00+02:00"}, headers=organizer)
    assert response.status_code == 400
    assert [e["title"] for e in client.get("/events").json()["data"]] == ["Event1"]


def test_empty_title_is_rejected(client, organizer, speakers, rooms):
    assert create_event(client, organizer, "", "2020-01-01T12:00", rooms[0], speakers[0]).status_code == 422
    e1 = create_event(client, organizer, "Event1", "2020-01-01T12:00", rooms[0], speakers[0]).json()["data"]["id"]
    response = client.put(f"/events/{e1}", json={"title": ""}, headers=organizer)
    assert response.status_code == 422
    assert client.get(f"/events/{e1}").json()["data"]["title"] == "Event1"


def test_title_only_update_keeps_room_and_time(client, organizer, speakers, rooms):
    r1, r2 = rooms
    e1 = create_event(client, organizer, "Event1", "2020-01-01T12:00", r1, speakers[0]).json()["data"]["id"]
    client.put(f"/events/{e1}", json={"room_num": r2}, headers=organizer)
    response = client.put(f"/events/{e1}", json={"title": "Renamed"}, headers=organizer)
    assert response.status_code == 200
    data = response.json()["data"]
    assert (data["title"], data["room_num"], data["time"]) == ("Renamed", r2, "2020-01-01T12:00:00")


def test_sign_up_unknown_event(client):
    _, attendee = register_and_login(client, "attendee@example.com", "attendee")
    assert client.post("/events/missing/attendees", headers=attendee).status_code == 404
    assert client.delete("/events/missing/attendees", headers=attendee).status_code == 404


def test_importing_main_opens_no_database(tmp_path, monkeypatch):
    import main
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("DATABASE_PATH", raising=False)
    importlib.reload(main)
    assert list(tmp_path.iterdir()) == []
