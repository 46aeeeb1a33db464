"""HTTP surface for teams, brackets, results, schedules and resets."""
import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def tournament_id(client: TestClient):
    response = client.post(
        "/api/tournaments",
        json={"name": "Spring Classic", "year": 2026, "court_names": ["1", "2"]},
    )
    return response.json()["id"]


def add_team(client: TestClient, name: str, rank: int, paid: bool = True):
    response = client.post(
        "/api/teams",
        json={
            "name": name,
            "rank": rank,
            "registrations": [
                {
                    "tournament": "Spring Classic",
                    "year": 2026,
                    "payment_status": "paid" if paid else "pending",
                }
            ],
        },
    )
    assert response.status_code == 201
    return response.json()["id"]


def put_on_calendar(client: TestClient, tournament_id):
    response = client.post(
        f"/api/tournaments/{tournament_id}/schedule/generate",
        json={
            "start_date": "2026-05-02",
            "end_date": "2026-05-02",
            "start_time": "09:00",
            "end_time": "18:00",
            "strategy": "parallel",
        },
    )
    assert response.status_code == 200
    return response.json()


@pytest.fixture
def field(client: TestClient, tournament_id):
    return [add_team(client, f"Team {i}", i) for i in range(1, 6)]


def test_registered_teams_explain_eligibility(client: TestClient, tournament_id, field):
    add_team(client, "Pending", 6, paid=False)

    data = client.get(f"/api/tournaments/{tournament_id}/registered-teams").json()

    assert data["registered_count"] == 6
    assert data["eligible_count"] == 5
    pending = next(t for t in data["teams"] if t["team_name"] == "Pending")
    assert pending["eligible"] is False
    assert pending["reason"] == "no payment found"
    assert {t["rule"] for t in data["teams"] if t["eligible"]} == {"tournament_registration"}


def test_duplicate_external_id_conflicts(client: TestClient):
    payload = {"name": "Dup", "external_id": "reg-1"}
    assert client.post("/api/teams", json=payload).status_code == 201
    assert client.post("/api/teams", json=payload).status_code == 409


def test_create_bracket(client: TestClient, tournament_id, field):
    response = client.post(f"/api/tournaments/{tournament_id}/bracket", json={"seeding": "rank"})

    assert response.status_code == 201
    data = response.json()
    assert data["total_matches"] == 6
    assert data["rounds"] == 3
    assert data["bye_count"] == 1
    first = data["matches"][0]
    assert (first["team1_name"], first["team2_name"]) == ("Team 1", "Team 4")

    assert client.get(f"/api/tournaments/{tournament_id}").json()["status"] == "open"
    assert len(client.get(f"/api/tournaments/{tournament_id}/matches", params={"round": 1}).json()) == 3
    assert client.post(f"/api/tournaments/{tournament_id}/bracket", json={}).status_code == 409


def test_create_bracket_without_enough_teams(client: TestClient, tournament_id):
    add_team(client, "Solo", 1)
    response = client.post(f"/api/tournaments/{tournament_id}/bracket")

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["code"] == "INSUFFICIENT_TEAMS"
    assert detail["details"]["eligible_count"] == 1


def test_unsupported_format(client: TestClient, tournament_id, field):
    response = client.post(f"/api/tournaments/{tournament_id}/bracket", json={"format": "double-elimination"})
    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "UNSUPPORTED_FORMAT"


def test_recreate_needs_confirm(client: TestClient, tournament_id, field):
    client.post(f"/api/tournaments/{tournament_id}/bracket")

    assert client.post(f"/api/tournaments/{tournament_id}/bracket/recreate", json={}).status_code == 409
    response = client.post(f"/api/tournaments/{tournament_id}/bracket/recreate", json={"confirm": True})
    assert response.status_code == 200
    assert response.json()["replaced_count"] == 6


def test_result_round_summary_and_advance(client: TestClient, tournament_id, field):
    matches = client.post(f"/api/tournaments/{tournament_id}/bracket", json={"seeding": "rank"}).json()["matches"]
    m1, m2 = matches[0], matches[1]
    put_on_calendar(client, tournament_id)

    response = client.put(f"/api/matches/{m1['id']}/result", json={"team1_score": 21, "team2_score": 15})
    assert response.status_code == 200
    body = response.json()
    assert body["match"]["winner_id"] == m1["team1_id"]
    assert [m["match_number"] for m in body["advanced"]] == [4, 6]
    assert body["tournament_status"] == "ongoing"

    summary = client.get(f"/api/tournaments/{tournament_id}/bracket/rounds/1/summary").json()
    assert summary["can_advance"] is False
    assert client.post(f"/api/tournaments/{tournament_id}/advance-round", json={"round": 1}).status_code == 409

    client.put(f"/api/matches/{m2['id']}/result", json={"team1_score": 21, "team2_score": 19})
    summary = client.get(f"/api/tournaments/{tournament_id}/bracket/rounds/1/summary").json()
    assert summary["can_advance"] is True
    assert summary["bye_matches"] == 1

    response = client.post(f"/api/tournaments/{tournament_id}/advance-round", json={"round": 1})
    assert response.status_code == 200
    assert response.json()["next_round"] == 2

    progress = client.get(f"/api/tournaments/{tournament_id}/progress").json()
    assert progress["current_round"] == 2


def test_result_errors(client: TestClient, tournament_id, field):
    matches = client.post(f"/api/tournaments/{tournament_id}/bracket", json={"seeding": "rank"}).json()["matches"]
    put_on_calendar(client, tournament_id)

    assert client.put("/api/matches/999/result", json={"team1_score": 1}).status_code == 404
    assert client.put(f"/api/matches/{matches[0]['id']}/result", json={"team1_score": -1}).status_code == 422
    level = client.put(f"/api/matches/{matches[0]['id']}/result", json={"team1_score": 5, "team2_score": 5})
    assert level.status_code == 409


def test_cancel_and_reset_match(client: TestClient, tournament_id, field):
    matches = client.post(f"/api/tournaments/{tournament_id}/bracket", json={"seeding": "rank"}).json()["matches"]
    match_id = matches[1]["id"]

    response = client.post(f"/api/matches/{match_id}/cancel", json={"notes": "rain"})
    assert response.json()["status"] == "cancelled"
    assert response.json()["notes"] == "rain"

    response = client.post(f"/api/matches/{match_id}/reset")
    assert response.status_code == 200
    assert response.json()["status"] == "scheduled"


def test_generate_and_view_schedule(client: TestClient, tournament_id, field):
    client.post(f"/api/tournaments/{tournament_id}/bracket", json={"seeding": "rank"})

    response = client.post(
        f"/api/tournaments/{tournament_id}/schedule/generate",
        json={
            "start_date": "2026-05-02",
            "end_date": "2026-05-02",
            "start_time": "09:00",
            "end_time": "18:00",
            "strategy": "parallel",
        },
    )
    assert response.status_code == 200
    data = response.json()
    # Neither the bye nor the single-feeder match takes a court
    assert data["scheduled_count"] == 4
    assert data["unplaced_count"] == 0
    assert data["conflicts"] == []

    day = client.get(f"/api/tournaments/{tournament_id}/schedule/date/2026-05-02").json()
    assert day["total_matches"] == 4
    assert sorted(day["courts"]) == ["1", "2"]

    slots = client.get(
        f"/api/tournaments/{tournament_id}/schedule/available-slots",
        params={"date": "2026-05-02", "start_time": "09:00", "end_time": "18:00"},
    ).json()
    assert set(slots["courts"]) == {"1", "2"}


def test_generate_with_require_all_fails_when_window_is_short(client: TestClient, tournament_id, field):
    client.post(f"/api/tournaments/{tournament_id}/bracket")
    response = client.post(
        f"/api/tournaments/{tournament_id}/schedule/generate",
        json={
            "start_date": "2026-05-02",
            "end_date": "2026-05-02",
            "start_time": "09:00",
            "end_time": "09:45",
            "require_all": True,
        },
    )
    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "SCHEDULING_WINDOW_EXHAUSTED"


def test_generate_rejects_inverted_window(client: TestClient, tournament_id):
    response = client.post(
        f"/api/tournaments/{tournament_id}/schedule/generate",
        json={"start_date": "2026-05-02", "end_date": "2026-05-01", "start_time": "09:00", "end_time": "18:00"},
    )
    assert response.status_code == 422


def test_manual_schedule_reports_conflicts(client: TestClient, tournament_id, field):
    matches = client.post(f"/api/tournaments/{tournament_id}/bracket", json={"seeding": "rank"}).json()["matches"]
    first, second = matches[0]["id"], matches[1]["id"]

    body = {"scheduled_time": "2026-05-02T09:00:00", "court": "1"}
    assert client.put(f"/api/matches/{first}/schedule", json=body).json()["has_conflicts"] is False

    response = client.put(f"/api/matches/{second}/schedule", json=body)
    assert response.status_code == 200
    assert response.json()["has_conflicts"] is True
    assert response.json()["match"]["court"] == "1"

    scan = client.get(f"/api/tournaments/{tournament_id}/schedule/conflicts").json()
    assert scan["total_conflicts"] == 1

    response = client.delete(f"/api/matches/{second}/schedule")
    assert response.json()["scheduled_time"] is None
    assert client.get(f"/api/tournaments/{tournament_id}/schedule/conflicts").json()["total_conflicts"] == 0


def test_can_reset_and_reset(client: TestClient, tournament_id, field):
    matches = client.post(f"/api/tournaments/{tournament_id}/bracket", json={"seeding": "rank"}).json()["matches"]
    put_on_calendar(client, tournament_id)
    client.put(f"/api/matches/{matches[0]['id']}/result", json={"team1_score": 21, "team2_score": 15})

    modes = client.get(f"/api/tournaments/{tournament_id}/schedule/can-reset").json()["modes"]
    assert modes["partial"]["allowed"] is True
    assert modes["hard"]["allowed"] is False

    response = client.post(f"/api/tournaments/{tournament_id}/schedule/reset", json={"mode": "hard"})
    assert response.status_code == 409

    response = client.post(f"/api/tournaments/{tournament_id}/schedule/reset", json={"mode": "partial"})
    assert response.status_code == 200
    assert response.json()["mode"] == "partial"

    assert client.post(f"/api/tournaments/{tournament_id}/schedule/reset", json={"mode": "bogus"}).status_code == 422


def test_standings_follow_results(client: TestClient, tournament_id, field):
    matches = client.post(f"/api/tournaments/{tournament_id}/bracket", json={"seeding": "rank"}).json()["matches"]
    put_on_calendar(client, tournament_id)
    client.put(f"/api/matches/{matches[0]['id']}/result", json={"team1_score": 21, "team2_score": 15})

    response = client.get(f"/api/tournaments/{tournament_id}/standings")

    assert response.status_code == 200
    data = response.json()
    assert len(data["rows"]) == 5
    leader = data["rows"][0]
    assert (leader["team_name"], leader["wins"], leader["point_diff"]) == ("Team 1", 1, 6)
    assert data["rows"][-1]["team_name"] == "Team 4"
    assert client.get("/api/tournaments/999/standings").status_code == 404


def test_hard_reset_then_delete(client: TestClient, tournament_id, field):
    client.post(f"/api/tournaments/{tournament_id}/bracket")
    assert client.delete(f"/api/tournaments/{tournament_id}").status_code == 409

    client.post(f"/api/tournaments/{tournament_id}/schedule/reset", json={"mode": "hard"})

    assert client.delete(f"/api/tournaments/{tournament_id}").status_code == 204
