"""
Content extraction: runs the per-page extractors and merges them into one
ExtractedData per lead.

Each extractor is best-effort. A failure in one is logged and yields its
empty default; the others still run.
"""
import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Callable, Dict, Iterable, List, Optional

from leadpipe.extractors.contact import (
    MAX_EMAILS, MAX_PHONES, extract_emails, extract_phones, find_contact_page_url, normalize_phone,
)
from leadpipe.extractors.history import extract_founded_year
from leadpipe.extractors.schema_org import extract_schema_org
from leadpipe.extractors.snippets import extract_snippets, extract_tagline
from leadpipe.extractors.social import PLATFORMS, extract_social_links, social_from_same_as
from leadpipe.extractors.team import (
    dedupe_team_members, extract_headcount, extract_team_members, is_valid_person_name,
)
from leadpipe.services import object_store

logger = logging.getLogger('pipeline.enrichment')

PRIORITY_PATHS = ('about', 'contact', 'team', 'staff', 'leadership')
STORED_PAGES_PREFIX = 'scrape-pages'


@dataclass
class ScrapedPage:
    url: str
    html: str = ''
    text_content: str = ''
    title: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'ScrapedPage':
        return cls(
            url=raw.get('url') or '',
            html=raw.get('html') or '',
            text_content=raw.get('text_content') or raw.get('text') or '',
            title=raw.get('title'),
        )


@dataclass
class ExtractedData:
    emails: List[str] = field(default_factory=list)
    phones: List[str] = field(default_factory=list)
    social: Dict[str, str] = field(default_factory=dict)
    contact_page_url: Optional[str] = None
    team_members: List[Dict] = field(default_factory=list)
    headcount_estimate: Optional[int] = None
    headcount_source: Optional[str] = None
    founded_year: Optional[int] = None
    founded_source: Optional[str] = None
    snippets: List[Dict] = field(default_factory=list)
    tagline: Optional[str] = None
    email_sources: Dict[str, str] = field(default_factory=dict)
    phone_sources: Dict[str, str] = field(default_factory=dict)
    social_sources: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def lead_fields(self) -> Dict[str, Any]:
        """Columns persisted on the lead row."""
        return {
            'emails': self.emails,
            'phones': self.phones,
            'social': self.social,
            'contact_page_url': self.contact_page_url,
            'team_members': self.team_members,
            'headcount_estimate': self.headcount_estimate,
            'founded_year': self.founded_year,
            'snippets': self.snippets,
            'tagline': self.tagline,
        }


def _safe(name: str, url: str, fn: Callable, default):
    try:
        return fn()
    except Exception as e:
        logger.warning("Extractor %s failed on %s: %s", name, url, e, exc_info=True)
        return default


def page_priority(url: str) -> int:
    lowered = (url or '').lower()
    for index, path in enumerate(PRIORITY_PATHS):
        if path in lowered:
            return index
    return len(PRIORITY_PATHS)


def extract_page_data(page: ScrapedPage, seen_snippets: Optional[set] = None) -> Dict[str, Any]:
    """Run every extractor against one page."""
    text, html, url = page.text_content or '', page.html or '', page.url
    return {
        'schema': _safe('schema_org', url, lambda: extract_schema_org(html), None),
        'emails': _safe('emails', url, lambda: extract_emails(text, html), []),
        'phones': _safe('phones', url, lambda: extract_phones(text, (), html), []),
        'social': _safe('social', url, lambda: extract_social_links(html), {}),
        'team': _safe('team', url, lambda: extract_team_members(text, url), []),
        'founded': _safe('history', url, lambda: extract_founded_year(text), (None, None)),
        'snippets': _safe('snippets', url, lambda: extract_snippets(html, url, seen_snippets), []),
        'tagline': _safe('tagline', url, lambda: extract_tagline(html), None),
    }


class _PhoneCollector:
    """Discovered phones, collapsing to the known phone once the site confirms it."""

    def __init__(self, known_phones: Iterable[str]):
        known = [normalize_phone(p) for p in known_phones if p]
        self.known = known[0] if known else None
        self.confirmed = False
        self.phones: List[str] = []
        self.sources: Dict[str, str] = {}

    def add(self, digits: str, url: str) -> None:
        if self.confirmed or len(digits) != 10:
            return
        if self.known and digits == self.known:
            logger.debug("Known phone confirmed on %s, dropping other discovered phones", url)
            self.phones = [digits]
            self.sources = {digits: url}
            self.confirmed = True
            return
        if digits not in self.phones:
            self.phones.append(digits)
            self.sources[digits] = url


def extract_all(pages: List[ScrapedPage], known_phones: Iterable[str] = ()) -> ExtractedData:
    """
    Merge per-page extraction across a lead's pages. About/contact/team pages
    are processed first, so their values win first-seen ties.
    """
    data = ExtractedData()
    phones = _PhoneCollector(known_phones)
    seen_snippets: set = set()
    team: List[Dict] = []
    texts: List[str] = []
    founder = None

    ordered = sorted(pages, key=lambda p: page_priority(p.url))
    logger.info("Extracting from %d pages", len(ordered))

    for page in ordered:
        extracted = extract_page_data(page, seen_snippets)
        texts.append(page.text_content or '')

        schema = extracted['schema'] or {}
        if schema.get('email') and schema['email'] not in data.email_sources:
            data.emails.append(schema['email'])
            data.email_sources[schema['email']] = page.url
        if schema.get('telephone'):
            phones.add(normalize_phone(schema['telephone']), page.url)
        for platform, url in social_from_same_as(schema.get('same_as') or []).items():
            if platform not in data.social:
                data.social[platform] = url
                data.social_sources[platform] = page.url
        if schema.get('founding_year') and data.founded_year is None:
            data.founded_year = schema['founding_year']
            data.founded_source = 'schema.org foundingDate'
        if schema.get('number_of_employees') and data.headcount_estimate is None:
            data.headcount_estimate = schema['number_of_employees']
            data.headcount_source = 'schema.org numberOfEmployees'
        if schema.get('description') and data.tagline is None:
            data.tagline = schema['description'][:300]
        founder = founder or schema.get('founder')

        for email in extracted['emails']:
            if email not in data.email_sources:
                data.emails.append(email)
                data.email_sources[email] = page.url
        for digits in extracted['phones']:
            phones.add(digits, page.url)
        for platform in PLATFORMS:
            url = extracted['social'].get(platform)
            if url and platform not in data.social:
                data.social[platform] = url
                data.social_sources[platform] = page.url

        team.extend(extracted['team'])
        year, source = extracted['founded']
        if year and data.founded_year is None:
            data.founded_year, data.founded_source = year, source
        data.snippets.extend(extracted['snippets'])
        if extracted['tagline'] and data.tagline is None:
            data.tagline = extracted['tagline']

    if founder and is_valid_person_name(founder):
        team.append({'name': founder, 'title': 'Founder', 'is_executive': True, 'source_url': 'schema.org'})
    data.team_members = dedupe_team_members(team)

    if data.headcount_estimate is None:
        estimate, source = _safe('headcount', 'all pages', lambda: extract_headcount('\n'.join(texts)),
                                 (None, None))
        data.headcount_estimate, data.headcount_source = estimate, source

    data.emails = data.emails[:MAX_EMAILS]
    data.phones = phones.phones[:MAX_PHONES]
    data.phone_sources = phones.sources
    data.contact_page_url = find_contact_page_url(p.url for p in pages)

    logger.info("Extracted %d emails, %d phones, %d social, %d team, %d snippets",
                len(data.emails), len(data.phones), len(data.social),
                len(data.team_members), len(data.snippets))
    return data


def stored_page_source(lead) -> List[ScrapedPage]:
    """
    Default page source: pages the upstream crawler wrote under
    scrape-pages/{lead_id}/, one JSON object per page.
    """
    pages = []
    for key in object_store.list_keys(f"{STORED_PAGES_PREFIX}/{lead.id}/"):
        if key.endswith('.json'):
            pages.append(ScrapedPage.from_dict(object_store.get_json(key)))
    return pages
