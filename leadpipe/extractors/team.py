"""
Team and headcount extraction.

Team members come from two patterns:
  1. "Name, Title" text where the title matches the executive/job dictionaries
  2. standalone capitalized names on about/team-style pages ("Team Member")

Headcount is the most frequent candidate across several numeric phrasings,
ties broken by the larger count.
"""
import logging
import re
from collections import Counter
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger('extractors.team')

MAX_TEAM_MEMBERS = 25
MIN_HEADCOUNT = 2
MAX_HEADCOUNT = 10000

EXECUTIVE_TITLES = {
    'owner', 'co-owner', 'founder', 'co-founder', 'cofounder', 'founder & ceo', 'founder and ceo',
    'owner & operator', 'owner and operator', 'owner/operator', 'owner / operator',
    'president', 'vice president', 'vp', 'svp', 'evp', 'ceo', 'cfo', 'coo', 'cto', 'cio', 'cmo',
    'chief executive officer', 'chief financial officer', 'chief operating officer',
    'chief technology officer', 'chief marketing officer', 'chairman', 'chairwoman',
    'managing partner', 'partner', 'principal', 'managing director', 'director',
    'general manager', 'executive director', 'proprietor',
}

JOB_TITLES = {
    'manager', 'office manager', 'operations manager', 'project manager', 'service manager',
    'sales manager', 'account manager', 'marketing manager', 'production manager',
    'supervisor', 'foreman', 'superintendent', 'estimator', 'senior estimator',
    'coordinator', 'project coordinator', 'office administrator', 'administrator',
    'bookkeeper', 'controller', 'accountant', 'dispatcher', 'receptionist',
    'lead technician', 'technician', 'service technician', 'installer', 'lead installer',
    'crew leader', 'team lead', 'engineer', 'project engineer', 'designer', 'architect',
    'consultant', 'advisor', 'specialist', 'customer service representative',
    'sales representative', 'master electrician', 'master plumber', 'journeyman',
}

_TITLE_PREFIX_JOINERS = (' of ', ' for ', ' -', ',')

_NAME_STOPWORDS = {
    'about', 'all', 'and', 'avenue', 'book', 'call', 'careers', 'click', 'co', 'company',
    'contact', 'copyright', 'customer', 'customers', 'email', 'estimate', 'estimates',
    'free', 'from', 'get', 'home', 'inc', 'learn', 'llc', 'ltd', 'meet', 'more', 'new',
    'now', 'our', 'phone', 'policy', 'privacy', 'quote', 'read', 'request', 'road',
    'service', 'services', 'street', 'suite', 'team', 'terms', 'the', 'this', 'today',
    'view', 'welcome', 'why', 'with', 'your', 'we', 'us', 'monday', 'tuesday',
    'wednesday', 'thursday', 'friday', 'saturday', 'sunday', 'january', 'february',
    'march', 'april', 'june', 'july', 'august', 'september', 'october', 'november',
    'december', 'north', 'south', 'east', 'west', 'county', 'city', 'residential',
    'commercial', 'licensed', 'insured', 'family', 'owned', 'testimonials',
}

_TITLE_WORDS = {w for title in EXECUTIVE_TITLES | JOB_TITLES for w in re.split(r'[\s/&-]+', title) if w}

NAME_THEN_TITLE = re.compile(
    r'([A-Z][a-z]{1,15}(?:\s+[A-Z]\.?)?\s+[A-Z][a-z]{1,20})[ \t,\-–|:]+([^\n]{2,60})'
)
STANDALONE_NAME = re.compile(
    r'^[ \t]*([A-Z][a-z]{1,15}(?:\s+[A-Z]\.?)?\s+[A-Z][a-z]{1,20})[ \t]*$', re.M
)
TEAM_PAGE_URL = re.compile(
    r'\b(about|team|staff|people|leadership|our-team|meet|who-we-are|management)\b', re.I
)

_NUM = r'(\d{1,3}(?:,\d{3})?|\d{1,5})'
_PEOPLE = r'(?:employees|staff members|staff|team members|professionals|technicians|workers|people)'
HEADCOUNT_PATTERNS = [
    ('direct', re.compile(
        r'\b' + _NUM + r'\+?\s+(?:full[- ]time\s+|dedicated\s+|skilled\s+|experienced\s+|trained\s+)?' + _PEOPLE + r'\b', re.I)),
    ('team-of', re.compile(r'\bteam\s+of\s+(?:over\s+|more\s+than\s+|nearly\s+)?' + _NUM + r'\b', re.I)),
    ('employs', re.compile(r'\bemploy(?:s|ing)?\s+(?:over\s+|more\s+than\s+|nearly\s+)?' + _NUM + r'\b', re.I)),
    ('over', re.compile(r'\b(?:over|more\s+than)\s+' + _NUM + r'\s+' + _PEOPLE + r'\b', re.I)),
    ('person-team', re.compile(r'\b' + _NUM + r'[- ](?:person|people|member|man)\s+(?:team|crew|staff)\b', re.I)),
]
HEADCOUNT_RANGE = re.compile(
    r'\b' + _NUM + r'\s*(?:-|–|to)\s*' + _NUM + r'\s+' + _PEOPLE + r'\b', re.I
)


def _to_int(raw: str) -> int:
    return int(raw.replace(',', ''))


def is_valid_person_name(name: str) -> bool:
    tokens = [t.strip('.') for t in name.split()]
    if len(tokens) < 2 or len(tokens) > 3:
        return False
    if any(t.isupper() and len(t) > 1 for t in tokens):
        return False
    lowered = [t.lower() for t in tokens]
    if any(t in _NAME_STOPWORDS or t in _TITLE_WORDS for t in lowered):
        return False
    return len(tokens[0]) >= 2 and len(tokens[-1]) >= 2


def classify_title(raw_title: str) -> Tuple[bool, bool]:
    """Return (matched, is_executive) for a title string."""
    normalized = raw_title.lower().strip()
    if len(normalized) < 2 or len(normalized) > 60:
        return False, False
    if normalized in EXECUTIVE_TITLES:
        return True, True
    if normalized in JOB_TITLES:
        return True, False
    for title in EXECUTIVE_TITLES:
        if any(normalized.startswith(title + joiner) for joiner in _TITLE_PREFIX_JOINERS):
            return True, True
    for title in JOB_TITLES:
        if any(normalized.startswith(title + joiner) for joiner in _TITLE_PREFIX_JOINERS):
            return True, False
    return False, False


def _match_title(raw: str) -> Optional[Tuple[str, bool]]:
    """Longest leading run of words that classifies as a title."""
    segment = re.split(r'[.;!?|]|\s{2,}', raw, maxsplit=1)[0].strip()
    words = segment.split()
    for size in range(min(len(words), 8), 0, -1):
        candidate = ' '.join(words[:size]).rstrip(',')
        matched, is_exec = classify_title(candidate)
        if matched:
            return candidate, is_exec
    return None


def extract_team_members(text: str, source_url: str) -> List[Dict]:
    members: List[Dict] = []
    seen = set()
    text = text or ''

    pos = 0
    while True:
        match = NAME_THEN_TITLE.search(text, pos)
        if not match:
            break
        name = match.group(1).strip()
        titled = _match_title(match.group(2)) if is_valid_person_name(name) else None
        if titled is None:
            pos = match.start() + 1
            continue
        title, is_exec = titled
        key = name.lower()
        if key not in seen:
            seen.add(key)
            members.append({'name': name, 'title': title, 'is_executive': is_exec, 'source_url': source_url})
        pos = match.start(2) + len(title)

    if TEAM_PAGE_URL.search(source_url.lower()):
        for match in STANDALONE_NAME.finditer(text):
            name = ' '.join(match.group(1).split())
            if not is_valid_person_name(name):
                continue
            key = name.lower()
            if key not in seen:
                seen.add(key)
                members.append({'name': name, 'title': 'Team Member', 'is_executive': False,
                                'source_url': source_url})

    members = members[:MAX_TEAM_MEMBERS]
    if members:
        logger.debug("Found %d team members: %s", len(members),
                     ', '.join(f"{m['name']} ({m['title']})" for m in members[:3]))
    return members


def dedupe_team_members(members: List[Dict]) -> List[Dict]:
    """Deduplicate by lowercase name, preferring executive entries."""
    by_name: Dict[str, Dict] = {}
    for member in members:
        key = member['name'].lower()
        existing = by_name.get(key)
        if existing is None or (member.get('is_executive') and not existing.get('is_executive')):
            by_name[key] = member
    return list(by_name.values())[:MAX_TEAM_MEMBERS]


def extract_headcount(text: str) -> Tuple[Optional[int], Optional[str]]:
    """Return (estimate, source phrase) or (None, None)."""
    candidates = []
    text = text or ''

    for label, pattern in HEADCOUNT_PATTERNS:
        for match in pattern.finditer(text):
            count = _to_int(match.group(1))
            if MIN_HEADCOUNT <= count <= MAX_HEADCOUNT:
                candidates.append((count, match.group(0).strip(), label))

    for match in HEADCOUNT_RANGE.finditer(text):
        low, high = _to_int(match.group(1)), _to_int(match.group(2))
        if MIN_HEADCOUNT <= high <= MAX_HEADCOUNT and high > low:
            candidates.append((high, match.group(0).strip(), 'range'))

    if not candidates:
        return None, None

    frequency = Counter(count for count, _, _ in candidates)
    best = max(candidates, key=lambda c: (frequency[c[0]], c[0]))
    logger.debug("Headcount ~%d from '%s' (%s)", best[0], best[1], best[2])
    return best[0], best[1]
