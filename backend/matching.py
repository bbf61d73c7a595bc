"""
Job/user match scoring and the matching run that persists results.

Scoring is a weighted sum of four sub-scores (skills 40, experience 25,
location 20, remote 15) normalised against the full weight total, so a pair
with missing fields simply earns nothing for those parts.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Tuple

from . import entities

logger = logging.getLogger(__name__)

SKILLS_WEIGHT = 40
EXPERIENCE_WEIGHT = 25
LOCATION_WEIGHT = 20
REMOTE_WEIGHT = 15
MAX_SCORE = SKILLS_WEIGHT + EXPERIENCE_WEIGHT + LOCATION_WEIGHT + REMOTE_WEIGHT

EXPERIENCE_LEVELS = ["entry", "mid", "senior", "lead"]
ADJACENT_LEVEL_CREDIT = 0.7

# country keyword in the user's location -> regional_hiring flag on the job
REGION_FLAGS = [
    ("nigeria", "africa_friendly"),
    ("indonesia", "asia_friendly"),
    ("brazil", "latam_friendly"),
]

QUALITY_FLOOR = 60
USER_SWEEP_DAYS = 30
JOB_SWEEP_DAYS = 60
BATCH_DAYS = 7
BATCH_JOB_LIMIT = 50


def _round_half_up(x: float) -> int:
    return int(math.floor(round(x, 6) + 0.5))


def _matching_skills(user: dict, job: dict) -> Tuple[List[str], float] | None:
    user_skills, job_skills = user.get("skills"), job.get("skills_required")
    if user_skills is None or job_skills is None:
        return None
    us = [str(s).lower() for s in user_skills]
    js = [str(s).lower() for s in job_skills]
    hits = [s for s in us if any(j in s or s in j for j in js)]
    ratio = min(1.0, len(hits) / max(len(js), 1))
    return hits, ratio


def _level_gap(user: dict, job: dict) -> int | None:
    """0 for a full match, 1 for adjacent levels, 2+ otherwise, None if unknown."""
    u, j = user.get("experience_level"), job.get("experience_level")
    if not u or not j:
        return None
    if j == "any" or u == j:
        return 0
    if u not in EXPERIENCE_LEVELS or j not in EXPERIENCE_LEVELS:
        return 2
    return abs(EXPERIENCE_LEVELS.index(u) - EXPERIENCE_LEVELS.index(j))


def _region_hit(user: dict, job: dict) -> bool | None:
    location, regional = user.get("location"), job.get("regional_hiring")
    if not location or regional is None:
        return None
    if not isinstance(regional, dict):
        # present but unreadable: no flags set
        regional = {}
    loc = str(location).lower()
    return any(country in loc and regional.get(flag) for country, flag in REGION_FLAGS)


def calculate_match_score(user: dict, job: dict) -> int:
    score = 0.0

    skills = _matching_skills(user, job)
    if skills is not None:
        score += skills[1] * SKILLS_WEIGHT

    gap = _level_gap(user, job)
    if gap == 0:
        score += EXPERIENCE_WEIGHT
    elif gap == 1:
        score += EXPERIENCE_WEIGHT * ADJACENT_LEVEL_CREDIT

    region = _region_hit(user, job)
    if region is True:
        score += LOCATION_WEIGHT
    elif region is False:
        score += LOCATION_WEIGHT * 0.5

    if job.get("is_remote"):
        score += REMOTE_WEIGHT

    return max(0, min(100, _round_half_up(score / MAX_SCORE * 100)))


def get_match_reasons(user: dict, job: dict) -> Dict[str, Any]:
    # NOTE: remote has no reason key; callers only see the three sub-scores below
    reasons: Dict[str, Any] = {}

    skills = _matching_skills(user, job)
    if skills is not None:
        hits, ratio = skills
        reasons["skills_match"] = _round_half_up(ratio * 100)
        reasons["matching_skills"] = hits

    gap = _level_gap(user, job)
    if gap is not None:
        reasons["experience_match"] = {0: 100, 1: 70}.get(gap, 30)

    region = _region_hit(user, job)
    if region is not None:
        reasons["location_preference"] = 100 if region else 50

    return reasons


def score_match(user: dict, job: dict) -> Tuple[int, Dict[str, Any]]:
    return calculate_match_score(user, job), get_match_reasons(user, job)


class MatchError(Exception):
    pass


@dataclass
class MatchRun:
    mode: str
    matches_created: int


class MatchOrchestrator:
    """
    Chooses which (user, job) pairs to score for a request and persists them.

    Single-pair requests always persist; sweeps keep only matches at or
    above the quality floor. Store errors propagate untouched and nothing is
    logged for a failed run.
    """

    def __init__(self, store, quality_floor: int = QUALITY_FLOOR, clock=None):
        self.store = store
        self.quality_floor = quality_floor
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def _row(self, user: dict, job: dict) -> Tuple[int, dict]:
        score, reasons = score_match(user, job)
        return score, {
            "user_id": user["id"],
            "job_id": job["id"],
            "match_score": score,
            "match_reasons": reasons,
        }

    def match_single(self, user_id: str, job_id: str) -> int:
        user = entities.get_user(self.store, user_id)
        job = entities.get_job(self.store, job_id)
        if not user or not job:
            raise MatchError("User or job not found")

        score, row = self._row(user, job)
        entities.upsert_matches(self.store, [row])
        logger.info("Match calculated: User %s + Job %s = %s%%", user_id, job_id, score)
        return 1

    def _sweep(self, pairs) -> List[dict]:
        rows = []
        for user, job in pairs:
            score, row = self._row(user, job)
            if score >= self.quality_floor:
                rows.append(row)
        entities.upsert_matches(self.store, rows)
        return rows

    def match_user(self, user_id: str, job_preferences: dict | None = None) -> int:
        user = entities.get_user(self.store, user_id)
        if not user:
            raise MatchError("User not found")

        category = (job_preferences or {}).get("category")
        since = entities.days_ago(USER_SWEEP_DAYS, self.clock())
        jobs = entities.jobs_created_since(self.store, since, category=category)
        rows = self._sweep((user, job) for job in jobs)
        logger.info("Calculated %d matches for user %s", len(rows), user_id)
        return len(rows)

    def match_job(self, job_id: str) -> int:
        job = entities.get_job(self.store, job_id)
        if not job:
            raise MatchError("Job not found")

        # created_at is the closest thing to "recently active" we have
        since = entities.days_ago(JOB_SWEEP_DAYS, self.clock())
        users = entities.users_created_since(self.store, since)
        rows = self._sweep((user, job) for user in users)
        logger.info("Calculated %d matches for job %s", len(rows), job_id)
        return len(rows)

    def match_batch(self) -> int:
        since = entities.days_ago(BATCH_DAYS, self.clock())
        jobs = entities.jobs_created_since(self.store, since, limit=BATCH_JOB_LIMIT)
        total = 0
        for job in jobs:
            total += self.match_job(job["id"])
        logger.info("Batch matching completed: %d total matches created", total)
        return total

    def run(self, body: Dict[str, Any]) -> MatchRun:
        user_id = body.get("user_id")
        job_id = body.get("job_id")
        batch = bool(body.get("batch_match"))

        if batch:
            run = MatchRun("batch", self.match_batch())
        elif user_id and job_id:
            run = MatchRun("single", self.match_single(user_id, job_id))
        elif user_id:
            run = MatchRun("user", self.match_user(user_id, body.get("job_preferences")))
        elif job_id:
            run = MatchRun("job", self.match_job(job_id))
        else:
            raise MatchError("Invalid match request parameters")

        entities.log_automation(self.store, user_id, "job_matching_completed", {
            "mode": run.mode,
            "event_type": body.get("event_type"),
            "matches_created": run.matches_created,
            "batch_match": batch,
            "processed_at": self.clock().isoformat(),
        })
        return run
