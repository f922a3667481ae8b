"""
Tests for the HTTP surface.
"""


def _turn(client, message, session_id="s1"):
    response = client.post("/api/v1/voice/turn", json={"message": message, "session_id": session_id})
    assert response.status_code == 200
    return response.json()


def test_health_check(client):
    """Test health check endpoint."""
    response = client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "sessions": 0}


def test_voice_turn(client):
    data = _turn(client, "What's the financial impact if our main supplier fails?")

    assert data["session_id"] == "s1"
    assert data["intent"] == "impact_analysis"
    assert data["mode"] == "analysis"
    assert data["success"] is True
    assert data["analytical_results"]["type"] == "impact"
    assert data["action_required"]["target"] == "/dashboard"
    assert "latency_ms" in data["meta"]


def test_voice_turn_rejects_empty_message(client):
    response = client.post("/api/v1/voice/turn", json={"message": ""})
    assert response.status_code == 422


def test_missing_session_is_404(client):
    response = client.get("/api/v1/sessions/nope")
    assert response.status_code == 404
    body = response.json()
    assert body["status"] == "error"
    assert "nope" in body["message"]


def test_session_read_surface(client):
    _turn(client, "show analytics")
    _turn(client, "xyz abc unclear")

    session = client.get("/api/v1/sessions/s1").json()["data"]
    assert len(session["conversation_turns"]) == 2

    history = client.get("/api/v1/sessions/s1/history", params={"limit": 1}).json()["data"]
    assert [t["raw_input"] for t in history] == ["xyz abc unclear"]

    analytics = client.get("/api/v1/sessions/s1/analytics").json()["data"]
    assert analytics["interaction_count"] == 2
    assert analytics["failed_commands"] == 1

    exported = client.get("/api/v1/sessions/s1/export").json()["data"]
    assert exported["analytics"]["analytical_insights"]["total_analyses"] == 1


def test_update_preferences(client):
    _turn(client, "show analytics")
    response = client.patch("/api/v1/sessions/s1/preferences", json={"auto_speak": False})
    assert response.status_code == 200
    assert response.json()["data"]["auto_speak"] is False

    assert _turn(client, "show analytics")["speech"] is None


def test_add_connection(client):
    first = _turn(client, "show analytics")["analytical_results"]["analysis_id"]
    second = _turn(client, "what is our carbon footprint?")["analytical_results"]["analysis_id"]

    response = client.post(
        "/api/v1/sessions/s1/connections",
        json={"from_analysis": first, "to_analysis": second, "connection_type": "dependency"},
    )
    assert response.status_code == 200

    response = client.post(
        "/api/v1/sessions/s1/connections",
        json={"from_analysis": first, "to_analysis": "analysis-unknown"},
    )
    assert response.status_code == 422

    exported = client.get("/api/v1/sessions/s1/export").json()["data"]
    assert len(exported["dependencies"]) == 1


def test_clear_session(client):
    _turn(client, "show analytics")
    assert client.delete("/api/v1/sessions/s1").status_code == 200
    assert client.get("/api/v1/sessions/s1").status_code == 404
    assert client.delete("/api/v1/sessions/s1").status_code == 404


def test_cleanup_endpoint(client, clock, config):
    _turn(client, "show analytics")
    clock.advance(config.SESSION_IDLE_TIMEOUT_SECONDS + 1)

    response = client.post("/api/v1/sessions/cleanup")
    assert response.json()["data"] == {"evicted": 1, "remaining": 0}


def test_audit_events(client):
    first = _turn(client, "show analytics")
    _turn(client, "show analytics", session_id="s2")

    events = client.get("/api/v1/audit/events", params={"session_id": "s1"}).json()["data"]
    assert len(events) == 1
    assert events[0]["correlation_id"] == first["correlation_id"]
