"""
Two-pass scoring engine.

Pass 1 (extract_facts): website markdown -> ExtractedFacts. Never raises on bad
model output; it degrades to ExtractedFacts.empty() and backfills what the
heuristic extractors can find.

Pass 2 (score_lead): facts digest + market context -> ScoringResult. Malformed
JSON gets exactly one repair call before the lead fails with ParseError.
Supporting evidence always comes from Pass 1's verbatim quotes.
"""
import os
import re
import json
import math
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

import yaml

from leadpipe.errors import ParseError
from leadpipe.extractors.history import extract_founded_year
from leadpipe.extractors.snippets import mentions_category
from leadpipe.extractors.team import extract_headcount
from leadpipe.pipeline.prompts import EXTRACTION_PROMPT, REPAIR_PROMPT, SCORING_PROMPT
from leadpipe.services import llm, object_store

logger = logging.getLogger('pipeline.scoring')

JSON_OBJECT_RE = re.compile(r'\{[\s\S]*\}')
WEBSITE_QUALITIES = ('none', 'template/basic', 'professional', 'content-rich')


# ── Scoring config (YAML with hardcoded fallback) ────────────────────────────

_scoring_config = None


def _default_config():
    """Hardcoded fallback if YAML is missing."""
    return {
        'version': 'default',
        'models': {
            'extraction': 'gpt-4o-mini',
            'scoring': 'gpt-4o-mini',
            'repair': 'gpt-4o-mini',
        },
        'max_tokens': {
            'extraction': 1024,
            'scoring': 1024,
            'repair': 1024,
        },
        'backoff_seconds': [5, 15, 45],
        'priority': {
            'weights': {'business_quality': 0.4, 'exit_readiness': 0.6},
            'tiers': {'tier_1': 70, 'tier_2': 40},
        },
    }


def load_scoring_config():
    """Load scoring config from YAML, with in-memory cache and hardcoded fallback."""
    global _scoring_config
    if _scoring_config is not None:
        return _scoring_config

    config_path = os.path.join(os.path.dirname(__file__), 'scoring_config.yaml')
    try:
        with open(config_path, 'r') as f:
            _scoring_config = yaml.safe_load(f)
        logger.info("Config loaded from YAML (version=%s)", _scoring_config.get('version', '?'))
    except Exception as e:
        logger.warning("YAML config not found (%s), using defaults", e)
        _scoring_config = _default_config()

    return _scoring_config


def reset_cache():
    """Reset the in-memory cache (useful for testing)."""
    global _scoring_config
    _scoring_config = None


def _setting(section: str, key: str):
    cfg = load_scoring_config()
    value = (cfg.get(section) or {}).get(key)
    return value if value is not None else _default_config()[section][key]


def _backoff():
    cfg = load_scoring_config()
    return cfg.get('backoff_seconds', _default_config()['backoff_seconds'])


# ── Coercion helpers ──────────────────────────────────────────────────────────

def _as_str_list(value) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if v is not None and str(v).strip()]
    return []


def _as_int(value, default: Optional[int]) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('true', 'yes', '1')
    return bool(value)


def _as_quotes(value) -> List[Dict[str, str]]:
    quotes = []
    for item in value if isinstance(value, list) else []:
        if isinstance(item, dict) and item.get('text'):
            quotes.append({'url': str(item.get('url') or ''), 'text': str(item['text'])})
        elif isinstance(item, str) and item.strip():
            quotes.append({'url': '', 'text': item.strip()})
    return quotes


# ── Pass 1: fact extraction ───────────────────────────────────────────────────

@dataclass
class ExtractedFacts:
    owner_names: List[str] = field(default_factory=list)
    first_name_only_contacts: List[str] = field(default_factory=list)
    team_members_named: int = 0
    team_member_names: List[str] = field(default_factory=list)
    years_in_business: Optional[int] = None
    founded_year: Optional[int] = None
    services: List[str] = field(default_factory=list)
    has_commercial_clients: bool = False
    commercial_client_names: List[str] = field(default_factory=list)
    certifications: List[str] = field(default_factory=list)
    location_count: int = 0
    pricing_signals: List[str] = field(default_factory=list)
    copyright_year: Optional[int] = None
    website_quality: str = 'none'
    red_flags: List[str] = field(default_factory=list)
    testimonial_count: int = 0
    recurring_revenue_signals: List[str] = field(default_factory=list)
    notable_quotes: List[Dict[str, str]] = field(default_factory=list)

    @classmethod
    def empty(cls) -> 'ExtractedFacts':
        return cls(red_flags=['No website data available'])

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ExtractedFacts':
        """Missing keys take defaults; wrong types are coerced."""
        quality = str(data.get('website_quality') or 'none').strip().lower()
        return cls(
            owner_names=_as_str_list(data.get('owner_names')),
            first_name_only_contacts=_as_str_list(data.get('first_name_only_contacts')),
            team_members_named=max(0, _as_int(data.get('team_members_named'), 0)),
            team_member_names=_as_str_list(data.get('team_member_names')),
            years_in_business=_as_int(data.get('years_in_business'), None),
            founded_year=_as_int(data.get('founded_year'), None),
            services=_as_str_list(data.get('services')),
            has_commercial_clients=_as_bool(data.get('has_commercial_clients')),
            commercial_client_names=_as_str_list(data.get('commercial_client_names')),
            certifications=_as_str_list(data.get('certifications')),
            location_count=max(0, _as_int(data.get('location_count'), 0)),
            pricing_signals=_as_str_list(data.get('pricing_signals')),
            copyright_year=_as_int(data.get('copyright_year'), None),
            website_quality=quality if quality in WEBSITE_QUALITIES else 'none',
            red_flags=_as_str_list(data.get('red_flags')),
            testimonial_count=max(0, _as_int(data.get('testimonial_count'), 0)),
            recurring_revenue_signals=_as_str_list(data.get('recurring_revenue_signals')),
            notable_quotes=_as_quotes(data.get('notable_quotes')),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def parse_extraction_response(text: str) -> ExtractedFacts:
    """Direct parse, then the first {...} block, then the empty default."""
    for candidate in (text, _first_object(text)):
        if not candidate:
            continue
        try:
            data = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(data, dict):
            return ExtractedFacts.from_dict(data)
    logger.warning("Failed to parse extraction response, using empty extraction")
    return ExtractedFacts.empty()


def backfill_facts(facts: ExtractedFacts, markdown: str) -> ExtractedFacts:
    """Fill facts the model left empty from the heuristic extractors."""
    if not markdown:
        return facts

    if facts.founded_year is None:
        year, source = extract_founded_year(markdown)
        if year:
            logger.debug("Backfilled founded_year=%d from '%s'", year, source)
            facts.founded_year = year
    if facts.years_in_business is None and facts.founded_year:
        facts.years_in_business = max(0, datetime.now().year - facts.founded_year)

    if facts.team_members_named == 0:
        estimate, source = extract_headcount(markdown)
        if estimate:
            logger.debug("Backfilled team_members_named=%d from '%s'", estimate, source)
            facts.team_members_named = estimate

    if not facts.has_commercial_clients and mentions_category(markdown, 'commercial_clients'):
        facts.has_commercial_clients = True

    return facts


def build_extraction_prompt(lead_data: Dict[str, Any], markdown: str) -> str:
    basic = {k: lead_data.get(k) for k in ('name', 'business_type', 'city', 'state')}
    return (
        EXTRACTION_PROMPT
        + '\n\n## Lead Basic Info\n\n' + json.dumps(basic, indent=2)
        + '\n\n## Raw Website Content\n\n' + markdown
    )


def extract_facts(lead_data: Dict[str, Any], markdown: Optional[str]) -> ExtractedFacts:
    """
    Pass 1. Empty markdown skips the LLM entirely. Throttling that outlasts
    the backoff ladder propagates as ThrottleError.
    """
    if not markdown or not markdown.strip():
        logger.info("No website content, skipping extraction call")
        return ExtractedFacts.empty()

    text = llm.invoke_with_backoff(
        build_extraction_prompt(lead_data, markdown),
        _setting('models', 'extraction'),
        label='extraction',
        backoff=_backoff(),
        max_tokens=_setting('max_tokens', 'extraction'),
    )
    return backfill_facts(parse_extraction_response(text), markdown)


def facts_key(lead_id: str, when: datetime = None) -> str:
    when = when or datetime.now(timezone.utc)
    return f"scoring-facts/{lead_id}/{when.strftime('%Y%m%dT%H%M%S%fZ')}.json"


def store_facts(lead_id: str, facts: ExtractedFacts) -> str:
    """Persist facts for audit; returns the object key."""
    key = facts_key(lead_id)
    object_store.put_json(key, facts.to_dict())
    return key


# ── Pass 2: scoring ───────────────────────────────────────────────────────────

def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def build_facts_summary(facts: ExtractedFacts) -> str:
    """Compact one-line-per-topic digest of the extracted facts."""
    lines = []

    first_names = '", "'.join(facts.first_name_only_contacts)
    if facts.owner_names:
        line = f"Owner: {', '.join(facts.owner_names)} (full name)."
        if facts.first_name_only_contacts:
            line += f' Also "{first_names}" (first name only).'
        lines.append(line)
    elif facts.first_name_only_contacts:
        lines.append(f'Owner: Unknown. First-name-only contacts: "{first_names}".')
    else:
        lines.append('Owner: Not identified.')

    if facts.team_members_named > 0:
        names = f" ({', '.join(facts.team_member_names)})" if facts.team_member_names else ''
        lines.append(f"Team: {_plural(facts.team_members_named, 'named member')}{names}.")
    else:
        lines.append('Team: No named team members.')

    if facts.years_in_business is not None:
        founded = f" (founded {facts.founded_year})" if facts.founded_year else ''
        lines.append(f"Years: {facts.years_in_business} years in business{founded}.")
    elif facts.founded_year is not None:
        lines.append(f"Founded: {facts.founded_year}.")
    else:
        lines.append('Years: Not stated.')

    if facts.services:
        lines.append(f"Services: {', '.join(facts.services)} ({_plural(len(facts.services), 'line')}).")
    else:
        lines.append('Services: None listed.')

    if facts.has_commercial_clients:
        names = f": {', '.join(facts.commercial_client_names)}" if facts.commercial_client_names else ''
        lines.append(f"Clients: Commercial{names}.")
    else:
        lines.append('Clients: Residential only, no commercial mentions.')

    lines.append(f"Certs: {', '.join(facts.certifications)}." if facts.certifications else 'Certs: None.')
    lines.append(f"Locations: {facts.location_count or 1}.")
    lines.append(f"Pricing: {', '.join(facts.pricing_signals)}." if facts.pricing_signals else 'Pricing: No signals.')

    website = f"Website: {facts.website_quality}."
    if facts.red_flags:
        website += f" Red flags: {'; '.join(facts.red_flags)}."
    lines.append(website)

    if facts.copyright_year is not None:
        lines.append(f"Copyright year: {facts.copyright_year}.")

    if facts.testimonial_count > 0:
        lines.append(f"Testimonials: {facts.testimonial_count} on site.")
    else:
        lines.append('Testimonials: None on site.')

    if facts.recurring_revenue_signals:
        lines.append(f"Recurring revenue: {', '.join(facts.recurring_revenue_signals)}.")
    else:
        lines.append('Recurring revenue: None.')

    return '\n'.join(lines)


def build_scoring_prompt(lead_data: Dict[str, Any], facts_summary: str, market_context: str = '') -> str:
    content = SCORING_PROMPT
    if market_context:
        content += f"\n\n{market_context}\n\n"
    else:
        content += '\n\n'
    content += '## Extracted Facts\n\n' + facts_summary
    content += '\n\n## Lead Data\n\n' + json.dumps(lead_data, indent=2, default=str)
    return content


@dataclass(frozen=True)
class Parsed:
    data: Dict[str, Any]


@dataclass(frozen=True)
class Repaired:
    data: Dict[str, Any]
    error: str


@dataclass(frozen=True)
class Failed:
    error: str
    raw_text: str = ''


ParseOutcome = Union[Parsed, Repaired, Failed]


def _first_object(text: str) -> Optional[str]:
    match = JSON_OBJECT_RE.search(text or '')
    return match.group(0) if match else None


def _load_object(text: str) -> Dict[str, Any]:
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    return data


def request_repair(broken: str, error: str) -> str:
    """The single repair call: ask the model to fix its own malformed JSON."""
    return llm.invoke_with_backoff(
        REPAIR_PROMPT.format(error=error, broken=broken),
        _setting('models', 'repair'),
        label='repair',
        backoff=_backoff(),
        max_tokens=_setting('max_tokens', 'repair'),
    )


def parse_scoring_response(text: str, repair: Callable[[str, str], str] = None) -> ParseOutcome:
    """
    Direct parse, then brace extraction, then at most one repair call.

    When a {...} block exists but is malformed, the block is sent for repair;
    otherwise the raw text is.
    """
    repair = repair or request_repair
    try:
        return Parsed(_load_object(text))
    except ValueError as e:
        error = str(e)
        broken = text or ''

    block = _first_object(text)
    if block is not None:
        try:
            return Parsed(_load_object(block))
        except ValueError as e:
            error, broken = str(e), block

    logger.warning("JSON repair needed: %s", error)
    repaired = repair(broken, error) or ''
    for candidate in (repaired, _first_object(repaired)):
        if candidate is None:
            continue
        try:
            return Repaired(_load_object(candidate), error=error)
        except ValueError:
            continue
    return Failed(error=f"JSON repair failed: {repaired[:200]}", raw_text=text or '')


def normalize_score(value) -> Optional[int]:
    """0-100 int; -1, null or non-numeric means insufficient evidence (None)."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or number < 0:
        return None
    return int(round(min(100.0, number)))


def compute_priority(business_quality: Optional[int], exit_readiness: Optional[int]):
    """(priority_score, priority_tier); both None unless both scores are present."""
    if business_quality is None or exit_readiness is None:
        return None, None
    weights = _setting('priority', 'weights')
    tiers = _setting('priority', 'tiers')
    score = int(round(weights['business_quality'] * business_quality
                      + weights['exit_readiness'] * exit_readiness))
    if score >= tiers['tier_1']:
        tier = 1
    elif score >= tiers['tier_2']:
        tier = 2
    else:
        tier = 3
    return score, tier


@dataclass
class ScoringResult:
    controlling_owner: Optional[str] = None
    ownership_type: str = 'unknown'
    is_excluded: bool = False
    exclusion_reason: Optional[str] = None
    business_quality_score: Optional[int] = None
    exit_readiness_score: Optional[int] = None
    rationale: str = ''
    supporting_evidence: List[Dict[str, str]] = field(default_factory=list)
    priority_score: Optional[int] = None
    priority_tier: Optional[int] = None

    @classmethod
    def from_model_output(cls, data: Dict[str, Any], facts: ExtractedFacts) -> 'ScoringResult':
        result = cls(
            controlling_owner=data.get('controlling_owner') or None,
            ownership_type=str(data.get('ownership_type') or 'unknown'),
            is_excluded=_as_bool(data.get('is_excluded')),
            exclusion_reason=data.get('exclusion_reason') or None,
            business_quality_score=normalize_score(data.get('business_quality_score')),
            exit_readiness_score=normalize_score(data.get('exit_readiness_score')),
            rationale=str(data.get('rationale') or ''),
            supporting_evidence=[{'url': q['url'], 'snippet': q['text']} for q in facts.notable_quotes],
        )
        result.priority_score, result.priority_tier = compute_priority(
            result.business_quality_score, result.exit_readiness_score,
        )
        return result

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def lead_fields(self) -> Dict[str, Any]:
        """Columns persisted on the lead row."""
        return {
            'controlling_owner': self.controlling_owner,
            'ownership_type': self.ownership_type,
            'is_excluded': self.is_excluded,
            'exclusion_reason': self.exclusion_reason,
            'business_quality_score': self.business_quality_score,
            'exit_readiness_score': self.exit_readiness_score,
            'priority_score': self.priority_score,
            'priority_tier': self.priority_tier,
            'scoring_rationale': self.rationale,
            'supporting_evidence': self.supporting_evidence,
        }


def score_lead(lead_data: Dict[str, Any], facts: ExtractedFacts, market_context: str = '') -> ScoringResult:
    """Pass 2. Raises ParseError when the response is unusable after one repair."""
    text = llm.invoke_with_backoff(
        build_scoring_prompt(lead_data, build_facts_summary(facts), market_context),
        _setting('models', 'scoring'),
        label='scoring',
        backoff=_backoff(),
        max_tokens=_setting('max_tokens', 'scoring'),
    )

    outcome = parse_scoring_response(text)
    if isinstance(outcome, Failed):
        raise ParseError(outcome.error, raw_text=outcome.raw_text)
    if isinstance(outcome, Repaired):
        logger.info("Scoring JSON repaired (%s)", outcome.error)
    return ScoringResult.from_model_output(outcome.data, facts)
