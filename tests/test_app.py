import time

import pytest

from beacon_color.app import create_app


@pytest.fixture
def app():
    app = create_app({"TESTING": True, "BEACON_MAX_HEIGHT": 2})
    yield app
    app.extensions["beacon_exhaustive"].cancel()


@pytest.fixture
def client(app):
    return app.test_client()


def test_palette(client):
    rv = client.get("/palette")
    assert rv.status_code == 200
    data = rv.get_json()
    assert len(data) == 16
    assert data[0] == {"name": "white_stained_glass", "display": "White Stained Glass", "hex": "#f9fffe"}


def test_stack_evaluation(client):
    rv = client.get(
        "/stack?target=%2300eb76&glass=red_stained_glass&glass=white_stained_glass&glass=black_stained_glass"
    )
    assert rv.status_code == 200
    data = rv.get_json()
    assert data["target"] == "#00eb76"
    assert data["color"] == [121, 90, 90]
    assert len(data["mergedStackColors"]) == 3


def test_stack_errors(client):
    assert client.get("/stack?target=nope&glass=red_stained_glass").status_code == 400
    rv = client.get("/stack?glass=violet_stained_glass")
    assert rv.status_code == 400
    assert "violet" in rv.get_json()["error"]


def test_search_beam(client):
    rv = client.get("/search?target=rgb(0,235,118)&preset=very%20low")
    assert rv.status_code == 200
    data = rv.get_json()
    assert data["target"] == "#00eb76" and data["preset"] == "Very Low"
    dists = [r["dist"] for r in data["results"]]
    assert dists and all(a > b for a, b in zip(dists, dists[1:]))
    assert all(len(r["stack"]) <= 2 for r in data["results"])
    # only 16 one-pane stacks exist, so the width-60 beam keeps them all
    assert data["checked"] == 16 + 16 * 16


def test_search_rejects_bad_input(client):
    assert client.get("/search?target=%23zz0000").status_code == 400
    rv = client.get("/search?preset=Ludicrous")
    assert rv.status_code == 400
    assert "Absolute" in rv.get_json()["supported"]


def _wait_done(client, timeout=120):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        data = client.get("/exhaustive").get_json()
        if data["done"]:
            return data
        time.sleep(0.1)
    raise AssertionError("exhaustive job did not finish")


def test_exhaustive_job(client):
    rv = client.post("/exhaustive?target=%2300eb76")
    assert rv.status_code == 202
    assert rv.get_json()["status"] == "running"
    data = _wait_done(client)
    assert data["checked"] == data["total"] == 16 + 256
    assert data["percent"] == 100.0 and data["maxHeight"] == 2
    assert data["results"] and data["results"][0]["stack"]


def test_absolute_preset_starts_worker(client):
    rv = client.get("/search?target=%2300eb76&preset=Absolute")
    assert rv.status_code == 202
    assert _wait_done(client)["status"] == "done"


def test_exhaustive_cancel(app, client):
    app.config["BEACON_MAX_HEIGHT"] = 6
    client.post("/exhaustive?target=%2300eb76")
    rv = client.delete("/exhaustive")
    data = rv.get_json()
    assert data["status"] == "cancelled" and not data["done"]
    assert client.get("/exhaustive").get_json()["status"] == "cancelled"


def test_search_height_and_glass_filter(client):
    rv = client.get(
        "/search?preset=very%20low&height=1&glass=red_stained_glass&glass=Lime%20Stained%20Glass"
    )
    assert rv.status_code == 200
    data = rv.get_json()
    assert data["maxHeight"] == 1 and data["checked"] == 2
    assert data["results"][0]["names"][0] in ("red_stained_glass", "lime_stained_glass")
    assert all(len(r["stack"]) == 1 for r in data["results"])


def test_scope_params_rejected(client):
    for qs in ("height=0", "height=3", "height=tall", "glass=violet_stained_glass"):
        assert client.get(f"/search?{qs}").status_code == 400, qs
        assert client.post(f"/exhaustive?{qs}").status_code == 400, qs


def test_exhaustive_height_glass_and_percent(client):
    rv = client.post(
        "/exhaustive?target=%2300eb76&height=2&glass=lime_stained_glass&glass=cyan_stained_glass"
    )
    assert rv.status_code == 202
    started = rv.get_json()
    assert started["total"] == 2 + 4 and started["maxHeight"] == 2
    assert 0.0 <= started["percent"] <= 100.0
    data = _wait_done(client)
    assert data["checked"] == 6 and data["percent"] == 100.0
    names = {n for r in data["results"] for n in r["names"]}
    assert names <= {"lime_stained_glass", "cyan_stained_glass"}


def test_absolute_preset_honours_height(client):
    rv = client.get("/search?preset=Absolute&height=1")
    assert rv.status_code == 202
    data = _wait_done(client)
    assert data["checked"] == data["total"] == 16
