# ml/main.py

import base64
import binascii
import logging

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel
from .resume_text import ResumeTextParser
from .resume_analyzer import ResumeAnalyzer, text_quality, to_response

logger = logging.getLogger(__name__)

MIN_ANALYSIS_CHARS = 50

app = FastAPI()

class ResumePayload(BaseModel):
    file_b64: str
    filename: str
    raw_text: str | None = None

class AnalyzePayload(BaseModel):
    text: str
    file_name: str | None = None
    text_quality: int | None = None

@app.get("/health")
def health():
    return {"status": "ok", "service": "ml"}

@app.post("/parse-resume")
def parse_resume(payload: ResumePayload):
    parser = ResumeTextParser()
    if payload.raw_text:
        raw = payload.raw_text
    else:
        try:
            content = base64.b64decode(payload.file_b64, validate=True)
        except (binascii.Error, ValueError):
            raise HTTPException(status_code=400, detail="file_b64 is not valid base64")
        try:
            raw = parser.extract_text(content, payload.filename)
        except Exception as e:
            logger.exception("Text extraction failed for %s", payload.filename)
            raise HTTPException(status_code=422, detail=f"Could not read {payload.filename}: {e}")

    clean = parser.clean_up_text(raw)
    sections = parser.define_sections(clean)
    contacts = parser.gather_contact_info_from_text(clean)

    return {
        "raw_text": raw,
        "cleaned_text": clean,
        "sections": sections,
        "contacts": contacts,
    }

@app.post("/analyze-resume")
def analyze_resume(payload: AnalyzePayload):
    text = payload.text or ""
    logger.info("Resume analysis request: file=%s length=%d", payload.file_name, len(text))
    if len(text.strip()) < MIN_ANALYSIS_CHARS:
        raise HTTPException(status_code=400, detail="Text too short for analysis")

    analyzer = ResumeAnalyzer()
    try:
        result = analyzer.analyze(text)
    except Exception as e:
        logger.exception("Resume analysis error")
        raise HTTPException(status_code=500, detail=f"Analysis failed: {e}")

    quality = payload.text_quality if payload.text_quality is not None else text_quality(text)
    logger.info(
        "Analysis completed: type=%s skills=%d quality=%d%%",
        result.analysis_type, result.skills_extracted, quality,
    )
    return to_response(result, quality)
