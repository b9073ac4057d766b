import pytest
from flask import Flask

from cdi_dews.api import SESSION_HEADER, api
from cdi_dews.predictions import mock_series
from cdi_dews.translate import translate_headline


class FakeTranslateResponse:

    def __init__(self, payload=None, status=200, text=""):
        self.payload = payload or {}
        self.status_code = status
        self.ok = status < 400
        self.text = text

    def json(self):
        return self.payload


@pytest.fixture
def app(store):
    app = Flask(__name__)
    app.config.update(TESTING=True, SESSION_STORE=store, GOOGLE_TRANSLATE_API_KEY="test-key")
    app.register_blueprint(api)
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def google(monkeypatch):
    """Replaces ``requests.post`` and records the form params it receives."""
    calls = []

    def install(response):
        def fake_post(url, data=None, timeout=None):
            calls.append(data)
            return response
        monkeypatch.setattr("cdi_dews.translate.requests.post", fake_post)
        return calls

    return install


# ---------------- /api/predictions ----------------
def test_predictions_for_region(client):
    resp = client.get("/api/predictions?region=afar")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body == {"region": "afar", "woreda": None, "predictions": mock_series("afar")}


def test_predictions_for_woreda(client):
    body = client.get("/api/predictions?region=somali&woreda=Fik").get_json()
    assert body["predictions"] == mock_series("somali", "Fik")
    assert len(body["predictions"]) == 12


@pytest.mark.parametrize("query", ["", "?region=oromia", "?region=afar&woreda=Gode"])
def test_predictions_rejects_unknown_places(client, query):
    resp = client.get(f"/api/predictions{query}")
    assert resp.status_code == 400
    assert "error" in resp.get_json()


def test_predictions_default_to_place_of_interest(client, store):
    session = store.login_by_email("somali.officer@example.com")
    body = client.get("/api/predictions", headers={SESSION_HEADER: session.token}).get_json()
    assert (body["region"], body["woreda"]) == ("somali", "Gode")
    assert body["predictions"] == mock_series("somali", "Gode")


def test_predictions_with_unknown_session(client):
    resp = client.get("/api/predictions", headers={SESSION_HEADER: "nope"})
    assert resp.status_code == 401


def test_unknown_session_is_refused_even_with_region(client, store):
    resp = client.get("/api/predictions?region=afar", headers={SESSION_HEADER: "nope"})
    assert resp.status_code == 401

    token = store.login_by_email("admin@example.com").token
    resp = client.get("/api/predictions?region=somali", headers={SESSION_HEADER: token})
    assert resp.get_json()["region"] == "somali"


# ---------------- /api/translate ----------------
def test_translate_success(client, google):
    calls = google(FakeTranslateResponse(
        {"data": {"translations": [{"translatedText": "Nidaamka"}, {"translatedText": "Roob"}]}}))
    resp = client.post("/api/translate", json={"q": ["System", "Rain"], "target": "so"})
    assert resp.status_code == 200
    assert resp.get_json() == {"translations": ["Nidaamka", "Roob"]}
    assert ("q", "System") in calls[0]
    assert ("target", "so") in calls[0]
    assert ("key", "test-key") in calls[0]


def test_translate_missing_fields(client):
    resp = client.post("/api/translate", json={"q": "Hello"})
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Missing q or target"}


def test_translate_missing_key(app, client):
    app.config["GOOGLE_TRANSLATE_API_KEY"] = ""
    resp = client.post("/api/translate", json={"q": "Hello", "target": "so"})
    assert resp.status_code == 500
    assert resp.get_json() == {"error": "Missing GOOGLE_TRANSLATE_API_KEY"}


def test_translate_passes_upstream_error_through(client, google):
    google(FakeTranslateResponse(status=403, text="API key not valid"))
    resp = client.post("/api/translate", json={"q": "Hello", "target": "aa"})
    assert resp.status_code == 403
    assert resp.get_json() == {"error": "API key not valid"}


def test_headline_translation_falls_back_to_english(google):
    assert translate_headline("Drought Early Warning System", "en", api_key="k") is None

    google(FakeTranslateResponse(status=500, text="boom"))
    assert translate_headline("Drought Early Warning System", "so", api_key="k") is None

    google(FakeTranslateResponse({"data": {"translations": [{"translatedText": "Digniin"}]}}))
    assert translate_headline("Drought Early Warning System", "so", api_key="k") == "Digniin"


# ---------------- /api/regions ----------------
def test_regions_catalog(client):
    body = client.get("/api/regions").get_json()
    assert [r["id"] for r in body["regions"]] == ["afar", "somali"]
    assert body["regions"][1]["woredas"] == ["Gode", "Fik", "Hargele"]
