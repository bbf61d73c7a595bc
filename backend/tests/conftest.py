import os
import pytest
from unittest.mock import patch

# Force memory store mode before the app reads its config
os.environ["SUPABASE_URL"] = ""
os.environ["SUPABASE_SERVICE_ROLE_KEY"] = ""
os.environ["REVENUECAT_API_KEY"] = ""
os.environ["ELEVENLABS_API_KEY"] = ""

import backend.app as app_module
from backend.app import app as flask_app
from backend.store import MemoryStore
from backend.subscriptions import SubscriptionClient


@pytest.fixture
def store(monkeypatch):
    """
    Fresh memory store per test, wired into the app together with a
    subscription client that reads from it.
    """
    mem = MemoryStore()
    monkeypatch.setattr(app_module, "STORE", mem)
    monkeypatch.setattr(app_module, "SUBSCRIPTIONS", SubscriptionClient(mem))
    return mem


@pytest.fixture
def client(store):
    flask_app.config["TESTING"] = True
    app_module.limiter.enabled = False

    with flask_app.test_client() as client:
        yield client


# Mock Gemini so tests never hit external API
@pytest.fixture
def mock_gemini():
    with patch("google.generativeai.GenerativeModel") as mock:
        instance = mock.return_value
        instance.generate_content.return_value.text = "Mocked AI response"
        yield mock
