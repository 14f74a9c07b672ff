import pytest
from fastapi.testclient import TestClient

from services.study_store import JsonStudyStore
from tests.fakes import FakeAIClient


@pytest.fixture
def store(tmp_path):
    return JsonStudyStore(str(tmp_path / "study_store" / "study.json"))


@pytest.fixture
def ai_client():
    return FakeAIClient()


@pytest.fixture
def app(store, ai_client):
    from main import app

    app.state.store = store
    app.state.ai_client = ai_client
    return app


@pytest.fixture
def api(app):
    return TestClient(app)
