import logging
import os
import re
from dataclasses import dataclass
from textwrap import dedent
from typing import List, Literal

import google.generativeai as genai
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .resume_text import ResumeTextParser
from .skill_patterns import COUNTRIES, PLACEHOLDER_EMAILS, PLACEHOLDER_NAMES, ROLE_KEYWORDS, SKILL_PATTERNS

logger = logging.getLogger(__name__)

MAX_PROMPT_CHARS = 8000
MIN_AI_SKILLS = 3

ExperienceLevel = Literal["Entry", "Mid", "Senior", "Executive"]

_LEVEL_ALIASES = {
    "entry": "Entry",
    "junior": "Entry",
    "mid": "Mid",
    "intermediate": "Mid",
    "senior": "Senior",
    "executive": "Executive",
}


def _dedupe(items: List[str]) -> List[str]:
    seen, out = set(), []
    for s in items:
        s = s.strip()
        if s and s.lower() not in seen:
            seen.add(s.lower())
            out.append(s)
    return out


class PersonalInfo(BaseModel):
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    location: str | None = None


class SkillSet(BaseModel):
    technical: List[str] = Field(default_factory=list)
    business: List[str] = Field(default_factory=list)
    soft: List[str] = Field(default_factory=list)
    industry: List[str] = Field(default_factory=list)

    @field_validator("technical", "business", "soft", "industry")
    @classmethod
    def _unique(cls, v: List[str]) -> List[str]:
        return _dedupe(v)

    def total(self) -> int:
        return len(self.technical) + len(self.business) + len(self.soft) + len(self.industry)


class ResumeAnalysis(BaseModel):
    """The JSON shape the model is asked to return."""

    model_config = ConfigDict(populate_by_name=True)

    personal_info: PersonalInfo = Field(default_factory=PersonalInfo, alias="personalInfo")
    current_role: str | None = Field(None, alias="currentRole")
    experience_level: ExperienceLevel = Field(alias="experienceLevel")
    professional_summary: str = Field("", alias="professionalSummary")
    skills: SkillSet

    @field_validator("experience_level", mode="before")
    @classmethod
    def _normalize_level(cls, v):
        # "Mid-level", "senior" and friends
        if isinstance(v, str) and v.strip():
            key = re.split(r"[\s-]", v.strip().lower())[0]
            return _LEVEL_ALIASES.get(key, v)
        return v


@dataclass
class AnalysisResult:
    data: ResumeAnalysis
    analysis_type: str
    confidence: str

    @property
    def skills_extracted(self) -> int:
        return self.data.skills.total()


_FENCE_RE = re.compile(r"^\s*```(?:json)?\s*|\s*```\s*$")


def decode_analysis(raw: str) -> ResumeAnalysis:
    """Strict decode of a model reply. Raises ValidationError on any mismatch."""
    body = _FENCE_RE.sub("", raw or "")
    return ResumeAnalysis.model_validate_json(body)


# -----------------------------
# Pattern-based extraction
# -----------------------------
def _find_skills(text_lower: str) -> SkillSet:
    found = {}
    for category, skills in SKILL_PATTERNS.items():
        found[category] = [
            s for s in skills
            if re.search(r"(?<![a-z0-9])" + re.escape(s.lower()) + r"(?![a-z0-9+#])", text_lower)
        ]
    return SkillSet(**found)


def _guess_name(lines: List[str]) -> str | None:
    for line in lines[:5]:
        words = line.split()
        if 2 <= len(words) <= 4 and all(re.fullmatch(r"[A-Za-z][A-Za-z.'-]*", w) for w in words):
            return line
    return None


def _guess_role(lines: List[str]) -> str | None:
    for line in lines[:15]:
        low = line.lower()
        if len(line) < 80 and any(re.search(rf"\b{k}\b", low) for k in ROLE_KEYWORDS):
            return line
    return None


def _guess_location(lines: List[str]) -> str | None:
    for country in COUNTRIES:
        for line in lines:
            if country.lower() in line.lower():
                return line if len(line) <= 60 else country
    return None


def guess_experience_level(text: str) -> ExperienceLevel:
    s = (text or "").lower()
    if re.search(r"\b(director|vice\s+president|vp|chief|head\s+of|cto|ceo)\b", s):
        return "Executive"

    m = re.search(r"(\d+)\s*(\+|plus)?\s*(years|yrs)\b", s)
    if m:
        years = int(m.group(1))
        if years <= 1:
            return "Entry"
        if years <= 4:
            return "Mid"
        return "Senior"

    if re.search(r"\b(senior|sr\.?|lead|principal)\b", s):
        return "Senior"
    if re.search(r"\b(intern(ship)?|fresher|new\s+grad|graduate|entry[- ]?level|junior)\b", s):
        return "Entry"
    return "Mid"


def extract_with_patterns(text: str) -> ResumeAnalysis:
    parser = ResumeTextParser()
    cleaned = parser.clean_up_text(text)
    lines = [ln for ln in cleaned.split("\n") if ln.strip()]
    contacts = parser.gather_contact_info_from_text(cleaned)
    sections = parser.define_sections(cleaned)

    return ResumeAnalysis(
        personal_info=PersonalInfo(
            name=_guess_name(lines),
            email=contacts.get("email"),
            phone=contacts.get("phone"),
            location=_guess_location(lines),
        ),
        current_role=_guess_role(lines),
        experience_level=guess_experience_level(cleaned),
        professional_summary=(sections.get("summary") or "")[:500],
        skills=_find_skills(cleaned.lower()),
    )


def _looks_like_placeholder(info: PersonalInfo) -> bool:
    return (info.name or "").strip().lower() in PLACEHOLDER_NAMES or \
        (info.email or "").strip().lower() in PLACEHOLDER_EMAILS


def enhance_with_patterns(analysis: ResumeAnalysis, text: str) -> ResumeAnalysis:
    found = _find_skills(text.lower())
    merged = SkillSet(
        technical=analysis.skills.technical + found.technical,
        business=analysis.skills.business + found.business,
        soft=analysis.skills.soft + found.soft,
        industry=analysis.skills.industry + found.industry,
    )
    update = {"skills": merged}
    if _looks_like_placeholder(analysis.personal_info):
        update["personal_info"] = extract_with_patterns(text).personal_info
    return analysis.model_copy(update=update)


# -----------------------------
# Model prompt
# -----------------------------
def _build_prompt(text: str) -> str:
    return dedent(f"""
    You are a senior HR analyst and resume parsing expert analyzing a real resume document.

    CRITICAL INSTRUCTIONS:
    1. Extract ACTUAL information from the provided resume text - do NOT use placeholder data
    2. Find the candidate's real name, contact information, and experience
    3. Extract ALL skills mentioned or implied in the resume content
    4. Categorize skills into: technical, business, soft, and industry-specific
    5. Determine experience level based on job titles, years, and responsibilities
    6. Write a professional summary based on the actual resume content

    RESUME TEXT TO ANALYZE:
    {text[:MAX_PROMPT_CHARS]}

    Return ONLY valid JSON in this exact format:
    {{
      "personalInfo": {{"name": "...", "email": "...", "phone": "...", "location": "..."}},
      "currentRole": "most recent job title",
      "experienceLevel": "Entry|Mid|Senior|Executive",
      "professionalSummary": "2-3 sentence summary",
      "skills": {{"technical": [], "business": [], "soft": [], "industry": []}}
    }}
    """)


class ResumeAnalyzer:
    def __init__(self, model_name: str | None = None, api_key: str | None = None):
        api_key = api_key or os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
        self.model = None
        if not api_key:
            logger.warning("GEMINI_API_KEY not set; resume analysis uses pattern matching only")
            return

        genai.configure(api_key=api_key.strip().strip('"').strip("'"))
        model_name = model_name or os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
        self.model = genai.GenerativeModel(
            model_name,
            system_instruction="You extract structured data from resumes and answer with JSON only.",
            generation_config={
                "temperature": 0.3,
                "max_output_tokens": 1500,
                "response_mime_type": "application/json",
            },
        )

    def analyze(self, text: str) -> AnalysisResult:
        if self.model is None:
            return AnalysisResult(extract_with_patterns(text), "pattern-matching", "low")

        try:
            resp = self.model.generate_content(_build_prompt(text))
        except Exception as e:
            # quota, auth and network failures all land here
            logger.warning("Gemini request failed (%s); using pattern matching", e)
            return AnalysisResult(extract_with_patterns(text), "pattern-matching", "low")

        try:
            raw = resp.text or ""
        except ValueError:
            # blocked or empty candidates
            raw = ""

        try:
            analysis = decode_analysis(raw)
        except ValidationError as e:
            logger.warning("Model reply did not match the resume schema (%d errors); using patterns", e.error_count())
            return AnalysisResult(extract_with_patterns(text), "pattern-matching", "low")

        if analysis.skills.total() < MIN_AI_SKILLS or _looks_like_placeholder(analysis.personal_info):
            logger.info("Model returned thin results, enhancing with pattern matching")
            return AnalysisResult(enhance_with_patterns(analysis, text), "enhanced-pattern-matching", "medium")

        return AnalysisResult(analysis, "ai-analysis", "high")


def text_quality(text: str) -> int:
    return min(100, int(len(text or "") / 100 + 0.5))


def to_response(result: AnalysisResult, quality: int) -> dict:
    return {
        "success": True,
        "data": result.data.model_dump(by_alias=True),
        "analysisType": result.analysis_type,
        "confidence": result.confidence,
        "textQuality": quality,
        "skillsExtracted": result.skills_extracted,
    }
