import io
from unittest.mock import MagicMock, patch

import requests

from backend import entities

ANALYSIS = {
    "success": True,
    "data": {
        "personalInfo": {"name": "Ada Obi", "location": "Lagos, Nigeria"},
        "currentRole": "Frontend Developer",
        "experienceLevel": "Mid",
        "professionalSummary": "Frontend developer.",
        "skills": {"technical": ["React", "Node"], "business": ["Leadership"], "soft": [], "industry": []},
    },
    "analysisType": "ai-analysis",
    "confidence": "high",
    "textQuality": 12,
    "skillsExtracted": 3,
}

RESUME_TEXT = "Ada Obi\nFrontend Developer\n" + "Built React and Node apps for remote teams. " * 5


def _fake_ml(path, payload):
    if path == "parse-resume":
        return {"cleaned_text": RESUME_TEXT, "raw_text": RESUME_TEXT, "sections": {}, "contacts": {}}
    return dict(ANALYSIS)


def test_analyze_text(client):
    with patch("backend.app.ml_post", side_effect=_fake_ml) as ml:
        res = client.post("/api/resume/analyze", json={"text": RESUME_TEXT, "fileName": "cv.txt"})

    assert res.status_code == 200
    assert res.json["analysisType"] == "ai-analysis"
    assert res.json["matches_created"] is None
    ml.assert_called_once_with("analyze-resume", {"text": RESUME_TEXT.strip(), "file_name": "cv.txt"})


def test_analyze_updates_profile_and_matches(client, store):
    store.insert(entities.USERS, {"id": "u1", "name": "Ada Obi"})
    store.insert(entities.JOBS, {
        "id": "j1",
        "skills_required": ["react", "graphql"],
        "experience_level": "any",
        "is_remote": True,
        "regional_hiring": {"africa_friendly": True},
    })

    with patch("backend.app.ml_post", side_effect=_fake_ml):
        res = client.post("/api/resume/analyze", json={"text": RESUME_TEXT, "user_id": "u1"})

    assert res.status_code == 200
    assert res.json["matches_created"] == 1

    user = entities.get_user(store, "u1")
    assert user["skills"] == ["React", "Node", "Leadership"]
    assert user["experience_level"] == "mid"
    assert user["location"] == "Lagos, Nigeria"

    workflows = [log["workflow_type"] for log in store.select(entities.AUTOMATION_LOGS)]
    assert workflows == ["resume_uploaded", "job_matching_completed"]


def test_upload_file(client):
    data = {"file": (io.BytesIO(RESUME_TEXT.encode("utf-8")), "cv.txt", "text/plain")}
    with patch("backend.app.ml_post", side_effect=_fake_ml) as ml:
        res = client.post("/api/resume/analyze", data=data, content_type="multipart/form-data")

    assert res.status_code == 200
    assert [c.args[0] for c in ml.call_args_list] == ["parse-resume", "analyze-resume"]
    assert ml.call_args_list[0].args[1]["filename"] == "cv.txt"


def test_upload_rejects_images(client):
    data = {"file": (io.BytesIO(b"\x89PNG"), "cv.png", "image/png")}
    res = client.post("/api/resume/analyze", data=data, content_type="multipart/form-data")
    assert res.status_code == 400
    assert res.json["error"] == "Only PDF, DOCX, or TXT allowed"


def test_empty_text(client):
    res = client.post("/api/resume/analyze", json={"text": "   "})
    assert res.status_code == 400


def test_short_text_passes_through_ml_detail(client):
    resp = MagicMock(status_code=400)
    resp.json.return_value = {"detail": "Text too short for analysis"}

    with patch("backend.app.ml_post", side_effect=requests.HTTPError(response=resp)):
        res = client.post("/api/resume/analyze", json={"text": "too short"})

    assert res.status_code == 400
    assert res.json == {"success": False, "error": "Text too short for analysis"}


def test_ml_service_down(client):
    with patch("backend.app.ml_post", side_effect=requests.ConnectionError("refused")):
        res = client.post("/api/resume/analyze", json={"text": RESUME_TEXT})
    assert res.status_code == 502
    assert res.json["error"] == "Analysis failed"
