import pytest
from unittest.mock import patch

SAMPLE_RESUME = """Jane Doe
Senior Software Engineer
jane.doe@example.com | +234 803 123 4567
Lagos, Nigeria

Summary
Engineer with 6 years building React and Node.js apps on AWS.

Experience
Acme Corp - Senior Software Engineer
Led a team delivering GraphQL APIs with PostgreSQL and Docker.

Skills
Python, SQL, Leadership, Communication, Project Management
"""


@pytest.fixture
def resume_text():
    return SAMPLE_RESUME


@pytest.fixture
def no_gemini_key(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)


# Mock Gemini so tests never hit external API
@pytest.fixture
def mock_gemini(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    with patch("google.generativeai.configure"), patch("google.generativeai.GenerativeModel") as mock:
        yield mock
