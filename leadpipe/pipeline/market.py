"""
Market calibration: per-business-type review/rating distributions and
cohort-relative lead ranks.

refresh_market_stats() rebuilds the market_stats table from scored,
non-excluded leads; build_market_context() turns one cohort's row into the
prompt section Pass 2 reads. refresh_lead_ranks() is a global recompute of
percent-ranks within business-type and city cohorts.
"""
import math
import logging
from collections import Counter, defaultdict
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from leadpipe.database import get_session
from leadpipe.errors import PersistenceError
from leadpipe.models.lead import Lead
from leadpipe.models.market_stats import MarketStats

logger = logging.getLogger('pipeline.market')

RC_PERCENTILES = [0, 1, 5, 10, 15, 20, 25, 30, 35, 40, 45, 50, 55, 60, 65, 70, 75, 80, 85, 90, 95, 99, 99.9]
MIN_COHORT_SIZE = 5
SCORE_LEVELS = 101  # distinct values a 0-100 integer score can take


def percentile_label(pct: float) -> str:
    return f"p{pct:g}"


def interpolate_percentile(sorted_values: Sequence[float], pct: float) -> float:
    """Linear interpolation between closest ranks (PERCENTILE_CONT semantics)."""
    if not sorted_values:
        raise ValueError("no values")
    if len(sorted_values) == 1:
        return float(sorted_values[0])
    position = (len(sorted_values) - 1) * pct / 100.0
    lower = int(math.floor(position))
    upper = min(lower + 1, len(sorted_values) - 1)
    fraction = position - lower
    return float(sorted_values[lower] + (sorted_values[upper] - sorted_values[lower]) * fraction)


def _median(values: Sequence[float]) -> Optional[float]:
    return interpolate_percentile(sorted(values), 50) if values else None


def compute_cohort_stats(review_counts: List[int], ratings: List[float]) -> Dict:
    ordered = sorted(review_counts)
    return {
        'lead_count': len(ordered),
        'rc_percentiles': {percentile_label(p): interpolate_percentile(ordered, p) for p in RC_PERCENTILES},
        'rating_mean': (sum(ratings) / len(ratings)) if ratings else None,
        'rating_median': _median(ratings),
    }


def refresh_market_stats() -> int:
    """Recompute and upsert every business-type cohort; returns the cohort count."""
    session = get_session()
    try:
        rows = (
            session.query(Lead.business_type, Lead.review_count, Lead.rating)
            .filter(Lead.scored_at.isnot(None))
            .filter(Lead.is_excluded.isnot(True))
            .filter(Lead.business_type.isnot(None))
            .filter(Lead.review_count.isnot(None))
            .all()
        )
        cohorts: Dict[str, Dict[str, list]] = defaultdict(lambda: {'reviews': [], 'ratings': []})
        for business_type, review_count, rating in rows:
            cohorts[business_type]['reviews'].append(review_count)
            if rating is not None:
                cohorts[business_type]['ratings'].append(rating)

        now = datetime.now(timezone.utc)
        existing = {row.business_type: row for row in session.query(MarketStats).all()}
        for business_type, values in cohorts.items():
            stats = compute_cohort_stats(values['reviews'], values['ratings'])
            row = existing.pop(business_type, None)
            if row is None:
                row = MarketStats(business_type=business_type)
                session.add(row)
            row.lead_count = stats['lead_count']
            row.rc_percentiles = stats['rc_percentiles']
            row.rating_mean = stats['rating_mean']
            row.rating_median = stats['rating_median']
            row.refreshed_at = now
        for stale in existing.values():
            session.delete(stale)

        session.commit()
        logger.info("Market stats refreshed: %d cohorts (%d removed)", len(cohorts), len(existing))
        return len(cohorts)
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("Market stats refresh failed", exc_info=True)
        raise PersistenceError(f"Market stats refresh failed: {e}") from e
    finally:
        session.close()


def get_market_stats(business_type: str) -> Optional[Dict]:
    session = get_session()
    try:
        row = session.get(MarketStats, business_type)
        if row is None:
            return None
        return {
            'lead_count': row.lead_count,
            'rc_percentiles': row.rc_percentiles or {},
            'rating_mean': row.rating_mean,
            'rating_median': row.rating_median,
        }
    finally:
        session.close()


def percentile_bucket(value: float, stats: Dict) -> str:
    """Where a review count sits among the cohort's breakpoints, highest first."""
    breakpoints = stats.get('rc_percentiles') or {}
    for index in range(len(RC_PERCENTILES) - 1, -1, -1):
        pct = RC_PERCENTILES[index]
        threshold = breakpoints.get(percentile_label(pct))
        if threshold is None or value < threshold:
            continue
        if pct >= 99.9:
            return '99.9th+ percentile'
        if pct >= 99:
            return '99th-99.9th percentile'
        return f"{pct:g}th-{RC_PERCENTILES[index + 1]:g}th percentile"
    return 'below minimum'


def build_market_context(business_type: Optional[str], review_count: Optional[int],
                         rating: Optional[float]) -> str:
    """'## Market Context' prompt section, or '' without a type or stats."""
    if not business_type:
        return ''
    stats = get_market_stats(business_type)
    if not stats:
        return ''

    rc = stats['rc_percentiles']

    def _rc(pct):
        return int(round(rc.get(percentile_label(pct)) or 0))

    section = f'Among {stats["lead_count"]} "{business_type}" businesses in our database:\n'
    section += (f"- Review count distribution: p25={_rc(25)}, median={_rc(50)}, "
                f"p75={_rc(75)}, p90={_rc(90)}, p99={_rc(99)}\n")
    if review_count is not None:
        section += f"- This lead's {review_count} reviews = {percentile_bucket(review_count, stats)} for this trade\n"
    median = stats['rating_median']
    if median is not None:
        section += f"- Rating: median {median:.1f}"
        if rating is not None:
            position = 'above' if rating >= median else 'below'
            section += f" - this lead's {rating:.1f} = {position} median"
    return '## Market Context\n\n' + section.rstrip('\n')


# ── Cohort ranks ──────────────────────────────────────────────────────────────

def percent_ranks(values: Sequence[float]) -> List[float]:
    """PERCENT_RANK() * 100: (rank - 1) / (n - 1), ties share the lowest rank."""
    n = len(values)
    if n <= 1:
        return [0.0] * n
    ordered = sorted(values)
    first_index = {}
    for index, value in enumerate(ordered):
        first_index.setdefault(value, index)
    return [first_index[v] / (n - 1) * 100 for v in values]


def normalized_entropy(values: Iterable[float]) -> float:
    """Shannon entropy of the score distribution scaled to [0, 1]; 0 for one distinct value."""
    counts = Counter(values)
    total = sum(counts.values())
    if len(counts) <= 1 or total == 0:
        return 0.0
    h = -sum((c / total) * math.log(c / total) for c in counts.values())
    return h / math.log(SCORE_LEVELS)


def _cohort_ranks(leads: List[Dict], key_fn) -> Dict[str, Dict]:
    """Per-lead {quality, exit, quality_w, exit_w} for one cohort dimension."""
    cohorts: Dict[tuple, List[Dict]] = defaultdict(list)
    for lead in leads:
        key = key_fn(lead)
        if key is not None:
            cohorts[key].append(lead)

    ranks = {}
    for members in cohorts.values():
        count = len(members)
        quality = [m['quality'] for m in members]
        exit_ = [m['exit'] for m in members]
        quality_w = count * normalized_entropy(quality)
        exit_w = count * normalized_entropy(exit_)
        eligible = count >= MIN_COHORT_SIZE
        q_ranks = percent_ranks(quality) if eligible else [None] * count
        e_ranks = percent_ranks(exit_) if eligible else [None] * count
        for member, q_rank, e_rank in zip(members, q_ranks, e_ranks):
            ranks[member['id']] = {'quality': q_rank, 'exit': e_rank, 'quality_w': quality_w, 'exit_w': exit_w}
    return ranks


def compute_lead_ranks(leads: List[Dict]) -> List[Dict]:
    """
    leads: [{id, business_type, city, state, quality, exit}]. Returns update
    rows with the four percentiles and the entropy-weighted composite.
    """
    by_type = _cohort_ranks(leads, lambda l: l['business_type'])
    by_city = _cohort_ranks(leads, lambda l: (l['city'], l['state']) if l['city'] else None)
    empty = {'quality': None, 'exit': None, 'quality_w': 0.0, 'exit_w': 0.0}

    rows = []
    for lead in leads:
        t = by_type.get(lead['id'], empty)
        c = by_city.get(lead['id'], empty)
        weighted = [
            (t['quality'], t['quality_w']), (c['quality'], c['quality_w']),
            (t['exit'], t['exit_w']), (c['exit'], c['exit_w']),
        ]
        numerator = sum(rank * w for rank, w in weighted if rank is not None)
        denominator = sum(w for rank, w in weighted if rank is not None)
        rows.append({
            'id': lead['id'],
            'quality_percentile_by_type': t['quality'],
            'quality_percentile_by_city': c['quality'],
            'exit_percentile_by_type': t['exit'],
            'exit_percentile_by_city': c['exit'],
            'composite_score': numerator / denominator if denominator else None,
        })
    return rows


def refresh_lead_ranks() -> int:
    """Global rank recompute over scored, non-excluded leads; returns rows updated."""
    session = get_session()
    try:
        scored = (
            session.query(Lead.id, Lead.business_type, Lead.city, Lead.state,
                          Lead.business_quality_score, Lead.exit_readiness_score)
            .filter(Lead.business_quality_score.isnot(None))
            .filter(Lead.exit_readiness_score.isnot(None))
            .filter(Lead.is_excluded.isnot(True))
            .all()
        )
        leads = [
            {'id': r[0], 'business_type': r[1], 'city': r[2], 'state': r[3], 'quality': r[4], 'exit': r[5]}
            for r in scored
        ]
        rows = compute_lead_ranks(leads)
        if rows:
            session.execute(update(Lead), rows)

        # Leads that dropped out of the ranked pool lose their stale ranks
        ranked_ids = [row['id'] for row in rows]
        stale = session.query(Lead).filter(Lead.composite_score.isnot(None))
        if ranked_ids:
            stale = stale.filter(Lead.id.notin_(ranked_ids))
        stale.update({
            Lead.quality_percentile_by_type: None,
            Lead.quality_percentile_by_city: None,
            Lead.exit_percentile_by_type: None,
            Lead.exit_percentile_by_city: None,
            Lead.composite_score: None,
        }, synchronize_session=False)

        session.commit()
        logger.info("Lead percentile ranks refreshed: %d rows updated", len(rows))
        return len(rows)
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("Lead rank refresh failed", exc_info=True)
        raise PersistenceError(f"Lead rank refresh failed: {e}") from e
    finally:
        session.close()
