# backend/app.py
from __future__ import annotations
import os
import requests
from datetime import datetime, timezone
from typing import Any, Dict, List
import base64

from flask import Flask, request, jsonify, make_response
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from dotenv import load_dotenv

from werkzeug.utils import secure_filename
from werkzeug.exceptions import HTTPException

# Gemini
import google.generativeai as genai

from . import entities
from .career_coach import CareerCoach, UsageLimitReached
from .matching import MatchOrchestrator, QUALITY_FLOOR
from .store import StoreError, SupabaseStore, store_from_env
from .subscriptions import SubscriptionClient, process_revenuecat_event
from .voice import VoiceServiceError, synthesize_speech

# ML Microservice configuration
ML_SERVICE_URL = os.getenv("ML_SERVICE_URL", "http://localhost:8002").rstrip("/")
ML_TIMEOUT = int(os.getenv("ML_TIMEOUT", "20"))

def ml_post(path: str, payload: dict):
    """Send POST request to ML microservice."""
    url = f"{ML_SERVICE_URL}/{path.lstrip('/')}"
    try:
        r = requests.post(url, json=payload, timeout=ML_TIMEOUT)
        r.raise_for_status()
        return r.json()
    except Exception as e:
        app.logger.error(f"[ML ERROR] {e}")
        raise

# Environment Loading and Flask App Setup
load_dotenv()
app = Flask(__name__)

# Rate Limiter (security)
limiter = Limiter(
    get_remote_address,
    app=app,
    default_limits=["200 per day", "50 per hour"],
    storage_uri="memory://",
)

# General App Config
MATCH_QUALITY_FLOOR = int(os.getenv("MATCH_QUALITY_FLOOR", str(QUALITY_FLOOR)))
PROFILE_MATCH_THRESHOLD = 75

# CORS Configuration
_allow = os.getenv("CORS_ALLOW_ORIGINS", "")
# Convert comma separated list into python list
origins = [o.strip() for o in _allow.split(",") if o.strip()]

# Default for dev
if not origins:
    origins = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
    ]

CORS(
    app,
    resources={r"/*": {"origins": origins}},
    supports_credentials=True,
    expose_headers=["Content-Type", "Authorization"],
)

# Global Error Handlers
@app.errorhandler(405)
def method_not_allowed(e):
    return jsonify({"success": False, "error": "Method not allowed"}), 405

@app.errorhandler(413)
def too_large(e):
    return bad("File too large (max 5MB)", 413)

@app.errorhandler(Exception)
def handle_uncaught(e):
    if isinstance(e, HTTPException):
        return e
    app.logger.exception("Unhandled exception", exc_info=e)
    return bad("Server error", 500)

# -----------------------------
# Gemini config
# -----------------------------
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")

if GEMINI_API_KEY:
    genai.configure(api_key=GEMINI_API_KEY)
    app.logger.info(f"Gemini model set to {GEMINI_MODEL}")
else:
    app.logger.warning("GEMINI_API_KEY not set; /api/ai/chat will return an error")

# -----------------------------
# Store and billing clients (built once per process)
# -----------------------------
STORE = store_from_env()

REVENUECAT_API_KEY = os.getenv("REVENUECAT_API_KEY")
REVENUECAT_API_URL = os.getenv("REVENUECAT_API_URL", "https://api.revenuecat.com/v1")
if not REVENUECAT_API_KEY:
    app.logger.warning("REVENUECAT_API_KEY not set; subscription status comes from user_subscriptions")

SUBSCRIPTIONS = SubscriptionClient(STORE, api_key=REVENUECAT_API_KEY, api_url=REVENUECAT_API_URL)

ELEVENLABS_API_KEY = os.getenv("ELEVENLABS_API_KEY")
ELEVENLABS_VOICE_ID = os.getenv("ELEVENLABS_VOICE_ID")

# -----------------------------
# Resume Upload Helpers
# -----------------------------
app.config["MAX_CONTENT_LENGTH"] = 5 * 1024 * 1024  # 5MB

ALLOWED_MIME = {
    "application/pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "text/plain",
}

def ok(data: Dict[str, Any] | List[Any] | str = "ok", code: int = 200):
    if isinstance(data, str):
        data = {"status": data}
    return jsonify(data), code

def bad(msg: str, code: int = 400):
    return jsonify({"error": msg}), code

def fail(msg: str, code: int = 500):
    return jsonify({"success": False, "error": msg}), code

def json_body() -> Dict[str, Any]:
    # arrays, strings and numbers are valid JSON but carry no named fields
    body = request.get_json(force=True, silent=True)
    return body if isinstance(body, dict) else {}

# Resume "experienceLevel" labels -> users.experience_level
_EXPERIENCE_FROM_RESUME = {
    "entry": "entry",
    "mid": "mid",
    "senior": "senior",
    "executive": "lead",
}

def _profile_from_analysis(data: dict) -> dict:
    skills = data.get("skills") or {}
    merged = list(dict.fromkeys((skills.get("technical") or []) + (skills.get("business") or [])))
    values = {"skills": merged}
    level = _EXPERIENCE_FROM_RESUME.get(str(data.get("experienceLevel") or "").strip().lower())
    if level:
        values["experience_level"] = level
    location = ((data.get("personalInfo") or {}).get("location") or "").strip()
    if location:
        values["location"] = location
    return values

def profile_completion(profile: dict) -> int:
    completion = 25  # base for having an account
    if profile.get("name"):
        completion += 25
    if profile.get("location"):
        completion += 25
    if profile.get("skills"):
        completion += 25
    return completion

def _orchestrator() -> MatchOrchestrator:
    return MatchOrchestrator(STORE, quality_floor=MATCH_QUALITY_FLOOR)

# -----------------------------
# Routes
# -----------------------------
@app.route("/")
def home():
    return "Remote job marketplace backend running"

@app.get("/api/health")
def health():
    info = {
        "status": "ok",
        "time": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "use_store": isinstance(STORE, SupabaseStore),
        "env": os.getenv("FLASK_ENV", "unknown"),
    }
    return ok(info)

@app.post("/functions/job-matching")
def job_matching():
    body = json_body()
    app.logger.info(
        "Calculating job matches: user_id=%s job_id=%s batch_match=%s event_type=%s",
        body.get("user_id"), body.get("job_id"), body.get("batch_match"), body.get("event_type"),
    )
    try:
        run = _orchestrator().run(body)
    except Exception as e:
        app.logger.error(f"Job matching error: {e}")
        return fail(str(e))

    return ok({
        "success": True,
        "message": "Job matching completed successfully",
        "matches_created": run.matches_created,
    })

@app.post("/webhooks/profile-updated")
def profile_updated():
    body = json_body()
    user_id = body.get("user_id")
    profile = body.get("profile_data") or {}
    if not user_id:
        return fail("Missing 'user_id'", 400)

    completion = profile_completion(profile)
    matches = 0
    try:
        if completion >= PROFILE_MATCH_THRESHOLD:
            app.logger.info(f"Profile complete enough for matching: {user_id}")
            matches = _orchestrator().run({"user_id": user_id, "event_type": "profile_updated"}).matches_created
    except Exception as e:
        app.logger.error(f"Profile update processing error: {e}")
        return fail(str(e))

    return ok({
        "success": True,
        "message": "Profile update webhook processed successfully",
        "profile_completion": completion,
        "matches_created": matches,
    })

@limiter.limit("10 per minute")
@app.post("/api/resume/analyze")
def resume_analyze():
    if request.is_json:
        body = json_body()
        text = (body.get("text") or "").strip()
        file_name = body.get("fileName")
        user_id = body.get("user_id")
        if not text:
            return bad("Provide 'text' or upload a file")
    else:
        if "file" not in request.files:
            return bad("No file part. Use 'file' field for upload or send JSON with 'text'")
        file = request.files["file"]
        file_name = secure_filename(file.filename or "resume.pdf")
        mime = file.mimetype or ""
        if mime not in ALLOWED_MIME:
            return bad("Only PDF, DOCX, or TXT allowed")
        user_id = request.form.get("user_id")
        content = file.read() or b""
        try:
            parsed = ml_post("parse-resume", {
                "file_b64": base64.b64encode(content).decode("utf-8"),
                "filename": file_name,
            })
        except Exception:
            return fail("Failed to extract resume text", 502)
        text = parsed.get("cleaned_text", "")
        app.logger.info(f"Upload: name={file_name}, mime={mime}, size={len(content)}")

    try:
        analysis = ml_post("analyze-resume", {"text": text, "file_name": file_name})
    except requests.HTTPError as e:
        resp = e.response
        if resp is not None and resp.status_code == 400:
            try:
                return fail(resp.json().get("detail") or "Invalid resume text", 400)
            except ValueError:
                return fail("Invalid resume text", 400)
        return fail("Analysis failed", 502)
    except Exception:
        return fail("Analysis failed", 502)

    matches = None
    if user_id and analysis.get("success"):
        try:
            entities.update_user(STORE, user_id, _profile_from_analysis(analysis.get("data") or {}))
            entities.log_automation(STORE, user_id, "resume_uploaded", {
                "file_name": file_name,
                "analysis_type": analysis.get("analysisType"),
                "skills_extracted": analysis.get("skillsExtracted"),
                "extracted_text_length": len(text),
            })
            matches = _orchestrator().run({"user_id": user_id, "event_type": "resume_uploaded"}).matches_created
        except Exception as e:
            app.logger.error(f"Resume profile update error: {e}")
            return fail(str(e))

    analysis["matches_created"] = matches
    return ok(analysis)

@app.post("/webhooks/revenuecat")
def revenuecat_webhook():
    payload = json_body()
    try:
        process_revenuecat_event(STORE, payload)
    except Exception as e:
        app.logger.error(f"Webhook processing error: {e}")
        return jsonify({"error": "Webhook processing failed", "message": str(e)}), 500
    return ok({"received": True})

@app.get("/api/subscription/<user_id>")
def subscription_status(user_id: str):
    return ok(SUBSCRIPTIONS.status_for(user_id).to_dict())

@limiter.limit("10 per minute")
@app.post("/api/ai/chat")
def ai_chat():
    data = json_body()
    message = (data.get("message") or "").strip()
    user_id = data.get("userId")
    if not message or not user_id:
        return bad("Message and userId are required")

    coach = CareerCoach(STORE, SUBSCRIPTIONS, model_name=GEMINI_MODEL)
    try:
        return ok(coach.chat(message, user_id, data.get("conversationId")))
    except UsageLimitReached as e:
        return jsonify({
            "error": str(e),
            "limit": e.limit,
            "used": e.used,
            "tier": e.tier,
        }), 429
    except StoreError as e:
        app.logger.error(f"AI chat store error: {e}")
        return bad("Failed to process AI request", 500)
    except Exception as e:
        app.logger.exception(e)
        return jsonify({"error": "Failed to process AI request", "details": str(e)}), 500

@limiter.limit("20 per minute")
@app.post("/api/voice/tts")
def voice_tts():
    data = json_body()
    text = data.get("text")
    if not text:
        return bad("Text is required")
    if not ELEVENLABS_API_KEY:
        app.logger.error("ElevenLabs API key not found")
        return bad("Voice service not configured", 500)

    try:
        audio = synthesize_speech(text, ELEVENLABS_API_KEY, data.get("voiceId") or ELEVENLABS_VOICE_ID)
    except VoiceServiceError as e:
        return bad(str(e), e.status)

    resp = make_response(audio)
    resp.headers["Content-Type"] = "audio/mpeg"
    resp.headers["Content-Length"] = str(len(audio))
    resp.headers["Cache-Control"] = "no-cache"
    return resp

# -----------------------------
# Main
# -----------------------------
if __name__ == "__main__":
    port = int(os.getenv("PORT", "5001"))
    app.run(host="0.0.0.0", port=port, debug=os.getenv("FLASK_DEBUG", "false").lower() in ("1", "true", "yes"))
