"""
tender_engine/scoring.py

Bid Scoring Engine.

- price score: (min_price / price) * 100 over priced submissions, computed in Decimal
- overall: 0.6 * technical + 0.4 * price, unless an evaluator override is set
- rank: full re-sort of the package submissions after every change

Scores are stored as floats (they are a projection, not money). The arithmetic
that produces them is Decimal so 0.6 * 80 + 0.4 * 90 is exactly 84.0.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Dict, List, Optional

from .audit import write_audit
from .errors import Conflict, NotFound, validation_failed
from .extensions import db
from .models import Submission
from .utils import parse_decimal, parse_id

logger = logging.getLogger(__name__)

TECHNICAL_WEIGHT = Decimal("0.6")
PRICE_WEIGHT = Decimal("0.4")

SCORE_MIN = Decimal("0")
SCORE_MAX = Decimal("100")


# ---------------------------------------------------------------------
# Pure calculations
# ---------------------------------------------------------------------
def compute_price_scores(prices: Dict[int, Optional[Decimal]]) -> Dict[int, Optional[float]]:
    """
    Map submission id -> price score.

    Unpriced submissions map to None and do not take part in the minimum.
    A non-positive minimum yields no scores at all.
    """
    priced = {sid: price for sid, price in prices.items() if price is not None}
    if not priced:
        return {sid: None for sid in prices}

    min_price = min(priced.values())
    if min_price <= 0:
        return {sid: None for sid in prices}

    scores: Dict[int, Optional[float]] = {}
    for sid, price in prices.items():
        if price is None:
            scores[sid] = None
        else:
            scores[sid] = float(min_price / price * 100)
    return scores


def blend_overall(technical_score, price_score) -> Optional[float]:
    """0.6 * technical + 0.4 * price, or None when either side is missing."""
    if technical_score is None or price_score is None:
        return None
    technical = Decimal(str(technical_score))
    price = Decimal(str(price_score))
    return float(TECHNICAL_WEIGHT * technical + PRICE_WEIGHT * price)


def rerank(submissions: List[Submission]) -> List[Submission]:
    """Sort by overall desc (None as 0), ties by submission id; rewrite rank 1..N."""
    ordered = sorted(submissions, key=lambda s: (-(s.overall_score or 0), s.id))
    for position, submission in enumerate(ordered, start=1):
        submission.rank = position
    return ordered


# ---------------------------------------------------------------------
# Package-level recompute
# ---------------------------------------------------------------------
def _package_submissions(tenant_id: str, package_id: int) -> List[Submission]:
    return (
        Submission.query.filter_by(tenant_id=tenant_id, package_id=package_id)
        .order_by(Submission.id.asc())
        .all()
    )


def recompute_price_scores(tenant_id: str, package_id: int) -> List[Submission]:
    """
    Recompute price scores, refresh derived overall scores, and re-rank.

    Flushes only; the caller owns the commit. Returns submissions in rank order.
    """
    submissions = _package_submissions(tenant_id, package_id)
    if not submissions:
        return []

    price_scores = compute_price_scores({s.id: parse_decimal(s.price) for s in submissions})
    has_prices = any(score is not None for score in price_scores.values())

    for submission in submissions:
        if has_prices:
            submission.price_score = price_scores[submission.id]
        if submission.overall_overridden:
            continue
        overall = blend_overall(submission.technical_score, submission.price_score)
        if overall is not None:
            submission.overall_score = overall

    ranked = rerank(submissions)
    db.session.flush()
    return ranked


# ---------------------------------------------------------------------
# Evaluator scoring
# ---------------------------------------------------------------------
def _check_range(field_name: str, value) -> Optional[float]:
    if value is None:
        return None
    parsed = parse_decimal(value)
    if parsed is None or parsed < SCORE_MIN or parsed > SCORE_MAX:
        raise validation_failed({field_name: ["Score must be a number between 0 and 100."]})
    return float(parsed)


def score_submission(
    tenant_id: str,
    submission_id,
    technical_score=None,
    override_score=None,
    user_id: Optional[int] = None,
) -> Submission:
    """
    Record a technical score and/or an overall override, then re-rank the package.

    An override wins outright and survives later price recomputes.
    """
    submission_pk = parse_id(submission_id)
    submission = None
    if submission_pk is not None:
        submission = Submission.query.filter_by(id=submission_pk, tenant_id=tenant_id).first()
    if not submission:
        raise NotFound("SUBMISSION_NOT_FOUND", "Submission not found.")

    if submission.package is not None and submission.package.is_awarded:
        raise Conflict("ALREADY_AWARDED", "Package has already been awarded.")

    technical = _check_range("technicalScore", technical_score)
    override = _check_range("overallScore", override_score)

    if technical is not None:
        submission.technical_score = technical

    if override is not None:
        submission.overall_score = override
        submission.overall_overridden = True
    elif not submission.overall_overridden:
        overall = blend_overall(submission.technical_score, submission.price_score)
        if overall is not None:
            submission.overall_score = overall

    rerank(_package_submissions(tenant_id, submission.package_id))
    db.session.commit()

    logger.info(
        "submission scored tenant=%s submission=%s technical=%s overall=%s rank=%s",
        tenant_id, submission.id, submission.technical_score, submission.overall_score, submission.rank,
    )
    write_audit(
        tenant_id,
        user_id,
        "SCORE",
        "Submission",
        submission.id,
        {
            "technicalScore": submission.technical_score,
            "overallScore": submission.overall_score,
            "overridden": submission.overall_overridden,
            "rank": submission.rank,
        },
    )
    return submission
