from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from arena.api.app import create_app


def _create_run(client: TestClient, prompt: str) -> dict:
    resp = client.post(
        "/api/run",
        json={
            "prompt": prompt,
            "models": [
                {"providerId": "anthropic", "modelId": "claude-3-haiku"},
                {"providerId": "meta", "modelId": "llama-3.1-8b"},
            ],
        },
    )
    assert resp.status_code == 200
    return resp.json()


def test_run_history_list_and_detail(db_path: str) -> None:
    with TestClient(create_app()) as client:
        created = _create_run(client, "Explain recursion.")

        listed = client.get("/api/runs")
        assert listed.status_code == 200
        body = listed.json()
        assert body["hasMore"] is False
        assert body["nextCursor"] is None
        assert len(body["runs"]) == 1
        summary = body["runs"][0]
        assert summary["id"] == created["runId"]
        assert summary["promptText"] == "Explain recursion."
        assert summary["modelCount"] == 2
        assert summary["createdAt"].endswith("+00:00")
        assert summary["totalCostUsd"] == pytest.approx(created["totalCostUsd"])

        detail = client.get(f"/api/runs/{created['runId']}")
        assert detail.status_code == 200
        run = detail.json()["run"]
        assert run["id"] == created["runId"]
        assert [m["id"] for m in run["models"]] == [r["modelRowId"] for r in created["results"]]
        assert [m["modelLabel"] for m in run["models"]] == ["claude-3-haiku", "Llama 3.1 8B"]
        first = run["models"][0]
        assert first["mocked"] is True
        assert first["totalTokens"] == first["promptTokens"] + first["completionTokens"]
        assert first["output"] == created["results"][0]["output"]


def test_get_unknown_run_is_404(db_path: str) -> None:
    with TestClient(create_app()) as client:
        resp = client.get("/api/runs/does-not-exist")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "not_found"


def test_delete_run_then_404(db_path: str) -> None:
    with TestClient(create_app()) as client:
        created = _create_run(client, "to delete")
        run_id = created["runId"]

        resp = client.delete(f"/api/runs/{run_id}")
        assert resp.status_code == 204
        assert resp.content == b""

        assert client.get(f"/api/runs/{run_id}").status_code == 404
        assert client.delete(f"/api/runs/{run_id}").status_code == 404
        assert client.get("/api/runs").json()["runs"] == []


def test_runs_pagination_walks_every_run_once(db_path: str) -> None:
    with TestClient(create_app()) as client:
        created = {_create_run(client, f"prompt {i}")["runId"] for i in range(5)}

        seen: list[str] = []
        cursor = None
        pages = 0
        while True:
            params = {"limit": 2}
            if cursor:
                params["cursor"] = cursor
            body = client.get("/api/runs", params=params).json()
            seen.extend(r["id"] for r in body["runs"])
            pages += 1
            if not body["hasMore"]:
                assert body["nextCursor"] is None
                break
            cursor = body["nextCursor"]
            assert cursor

    assert pages == 3
    assert len(seen) == 5
    assert set(seen) == created


@pytest.mark.parametrize("params", [{"limit": 0}, {"limit": 201}, {"cursor": "not-a-cursor"}])
def test_runs_list_rejects_bad_query(db_path: str, params: dict) -> None:
    with TestClient(create_app()) as client:
        resp = client.get("/api/runs", params=params)
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "invalid_argument"


def test_runs_without_persistence(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ARENA_PERSISTENCE", "off")
    with TestClient(create_app()) as client:
        assert client.get("/api/runs").json() == {"runs": [], "hasMore": False, "nextCursor": None}
        assert client.get("/api/runs/anything").status_code == 404
        resp = client.delete("/api/runs/anything")
    assert resp.status_code == 400
    assert resp.json()["error"] == {"code": "failed_precondition", "message": "Database not configured."}
