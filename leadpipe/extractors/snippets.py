"""
Snippet-of-interest extraction.

Page HTML is reduced to block-level text with BeautifulSoup, split into
sentences, and each sentence is matched against per-category phrase lists.
"""
import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from bs4 import BeautifulSoup

logger = logging.getLogger('extractors.snippets')

MIN_SNIPPET_LENGTH = 30
MAX_SNIPPET_LENGTH = 300
MAX_CAPS_WORDS = 3


@dataclass(frozen=True)
class CategoryConfig:
    phrases: Tuple[str, ...]
    max_per_page: int
    min_words: int
    reject_phrases: Tuple[str, ...] = ()


CATEGORY_CONFIGS: Dict[str, CategoryConfig] = {
    'history': CategoryConfig(
        phrases=(
            'founded in', 'established in', 'since 19', 'since 20',
            'years of experience', 'years in business', 'years serving',
            'family owned', 'family-owned', 'family operated', 'family-operated',
            'generation business', 'been in business', 'our history',
            'company was founded', 'we were founded', 'we were established',
            'has been serving', 'have been serving',
        ),
        max_per_page=3, min_words=8,
    ),
    'new_hire': CategoryConfig(
        phrases=(
            'joins our team', 'joins the team', 'joined our team', 'joined the team',
            'new team member', 'recently hired', 'new hire',
            'pleased to welcome', 'proud to welcome', 'excited to welcome',
            'welcome aboard', 'promoted to', 'named as', 'appointed',
        ),
        reject_phrases=('technician', 'installer', 'helper', 'apprentice', 'intern'),
        max_per_page=3, min_words=6,
    ),
    'certification': CategoryConfig(
        phrases=(
            'certified by', 'certification from', 'certified contractor',
            'accredited by', 'accreditation from',
            'osha certified', 'osha compliant', 'osha trained',
            'iso certified', 'iso 9001',
            'leed certified', 'leed accredited',
            'nate certified', 'epa certified', 'epa lead',
            'master certified', 'factory certified', 'manufacturer certified',
            'certified technician', 'certified installer', 'certified professional',
        ),
        max_per_page=3, min_words=5,
    ),
    'award': CategoryConfig(
        phrases=(
            'award winning', 'award-winning', 'won the award', 'received the award',
            'best of', 'top rated', 'top-rated', 'five star', '5-star', '5 star',
            'angi super service', "angie's list", 'angies list',
            'bbb a+', 'bbb accredited', 'better business bureau',
            'voted best', 'named best', 'recognized as',
            'excellence award', 'service award',
        ),
        reject_phrases=(
            'rewards', 'loyalty', 'cash back', 'cashback', 'earn points',
            'redeem', 'membership', 'auto delivery', 'points for every',
        ),
        max_per_page=3, min_words=5,
    ),
    'licensing': CategoryConfig(
        phrases=(
            'license #', 'license no', 'lic #', 'lic.',
            'licensed contractor', 'licensed and bonded', 'licensed & bonded',
            'fully licensed', 'state licensed',
            'registered contractor', 'contractor license',
            'bonded and licensed', 'bonded & licensed',
        ),
        max_per_page=2, min_words=4,
    ),
    'insurance': CategoryConfig(
        phrases=(
            'fully insured', 'licensed and insured', 'licensed & insured',
            'bonded and insured', 'bonded & insured', 'liability insurance',
            "workers' compensation", 'workers compensation', "workman's comp",
            'insured for your protection',
        ),
        reject_phrases=('insurance claim', 'we accept insurance', 'insurance providers'),
        max_per_page=2, min_words=4,
    ),
    'service_area': CategoryConfig(
        phrases=(
            'proudly serving', 'serving the', 'we serve', 'service area',
            'service areas', 'areas we serve', 'surrounding areas', 'surrounding communities',
            'throughout the', 'and surrounding',
        ),
        max_per_page=2, min_words=5,
    ),
    'revenue_scale': CategoryConfig(
        phrases=(
            'million in revenue', 'annual revenue', 'revenue of',
            'projects completed', 'jobs completed', 'homes built',
            'customers served', 'clients served', 'households served',
            'units managed', 'properties managed',
            'square feet', 'sq ft installed', 'acres managed',
        ),
        max_per_page=3, min_words=6,
    ),
    'recurring_revenue': CategoryConfig(
        phrases=(
            'maintenance contract', 'maintenance agreement', 'maintenance plan',
            'service contract', 'service agreement', 'service plan',
            'managed services', 'monthly service', 'annual service',
            'subscription', 'retainer', 'preventive maintenance',
            'recurring', 'ongoing maintenance', 'planned maintenance',
        ),
        reject_phrases=('cancel anytime', 'free trial', 'newsletter', 'unsubscribe'),
        max_per_page=3, min_words=6,
    ),
    'commercial_clients': CategoryConfig(
        phrases=(
            'commercial clients', 'commercial customers', 'commercial projects',
            'government contract', 'federal contract', 'state contract', 'municipal',
            'property management', 'property managers',
            'general contractor', 'subcontract',
            'hoa', 'homeowners association',
            'fortune 500', 'enterprise clients', 'corporate clients',
            'institutional', 'industrial clients',
        ),
        max_per_page=3, min_words=6,
    ),
    'multi_location': CategoryConfig(
        phrases=(
            'locations across', 'offices across', 'branches across',
            'expanded to', 'expanding to', 'opened our',
            'regional offices', 'multiple locations', 'multiple offices',
            'serving multiple', 'nationwide', 'statewide',
            'locations in', 'branches in',
        ),
        reject_phrases=('apply now', 'job opening', 'career'),
        max_per_page=2, min_words=6,
    ),
    'succession': CategoryConfig(
        phrases=(
            'retirement', 'retiring', 'looking to sell', 'ready to sell',
            'next chapter', 'succession plan', 'transition plan',
            'passing the torch', 'stepping down', 'winding down',
            'exit strategy', 'business transition', 'ownership transition',
            'legacy planning',
        ),
        max_per_page=2, min_words=6,
    ),
    'proprietary': CategoryConfig(
        phrases=(
            'patented', 'patent pending', 'patent #',
            'proprietary technology', 'proprietary process', 'proprietary system',
            'proprietary method', 'proprietary software', 'proprietary formula',
            'fleet of', 'specialized equipment', 'custom-built',
            'trade secret', 'in-house developed', 'internally developed',
        ),
        max_per_page=3, min_words=5,
    ),
}

SNIPPET_CATEGORIES = tuple(CATEGORY_CONFIGS)

# Management-level titles a new_hire snippet must mention
EXEC_TITLE_KEYWORDS = re.compile(
    r'\b(ceo|cfo|coo|cto|cio|president|vice president|vp|director|general manager|gm|manager|supervisor|team lead)\b',
    re.I,
)

NAV_JUNK = re.compile(
    r'\b(shop all|learn more|read more|click here|sign up|log in|subscribe|add to cart|buy now|view all|'
    r'see more|load more|show more|menu|navigation|breadcrumb|footer|header|sidebar|skip link)\b',
    re.I,
)

_STRIP_TAGS = (
    'script', 'style', 'noscript', 'svg', 'img', 'picture', 'video', 'audio', 'iframe',
    'figure', 'figcaption', 'form', 'input', 'button', 'select', 'textarea',
    'nav', 'header', 'footer', 'aside',
)
_BLOCK_TAGS = ('p', 'li', 'h1', 'h2', 'h3', 'h4', 'h5', 'h6', 'blockquote', 'td', 'dd', 'div', 'section')

_ABBREVIATIONS = ('Inc', 'Co', 'Corp', 'Ltd', 'St', 'Dr', 'Mr', 'Mrs', 'Ms', 'Jr', 'Sr', 'No', 'Ave', 'vs', 'etc')
_ABBREV_RE = re.compile(r'\b(' + '|'.join(_ABBREVIATIONS) + r')\.', re.I)
_INITIALISM_RE = re.compile(r'\b((?:[A-Za-z]\.){2,})')
_SENTENCE_END = re.compile(r'(?<=[.!?])\s+(?=[A-Z0-9"\'(])')
_DOT = '․'


def split_sentences(text: str) -> List[str]:
    """
    Sentence split that leaves common abbreviations ("Inc.", "Dr.", "U.S.")
    intact by masking their periods before splitting.
    """
    masked = _INITIALISM_RE.sub(lambda m: m.group(1).replace('.', _DOT), text)
    masked = _ABBREV_RE.sub(lambda m: m.group(1) + _DOT, masked)
    return [s.replace(_DOT, '.').strip() for s in _SENTENCE_END.split(masked) if s.strip()]


def is_clean_sentence(sentence: str) -> bool:
    caps_words = [w for w in sentence.split() if len(w) > 2 and w.isupper()]
    if len(caps_words) > MAX_CAPS_WORDS:
        return False
    return not NAV_JUNK.search(sentence)


def _text_blocks(html: str) -> List[str]:
    soup = BeautifulSoup(html or '', 'html.parser')
    for tag in soup.find_all(_STRIP_TAGS):
        tag.decompose()

    blocks = []
    for element in soup.find_all(_BLOCK_TAGS):
        # Only innermost blocks; their containers would repeat the same text
        if element.find(_BLOCK_TAGS):
            continue
        text = ' '.join(element.get_text(' ').split())
        if text:
            blocks.append(text)
    if not blocks:
        text = ' '.join(soup.get_text(' ').split())
        if text:
            blocks.append(text)
    return blocks


def _candidate_sentences(html: str) -> List[str]:
    sentences = []
    for block in _text_blocks(html):
        for sentence in split_sentences(block):
            if MIN_SNIPPET_LENGTH <= len(sentence) <= MAX_SNIPPET_LENGTH and is_clean_sentence(sentence):
                sentences.append(sentence)
    return sentences


def _normalize(text: str) -> str:
    return re.sub(r'[^a-z0-9 ]', '', text.lower()).strip()


def _matches(category: str, config: CategoryConfig, sentence: str) -> bool:
    lower = sentence.lower()
    if len(sentence.split()) < config.min_words:
        return False
    if not any(phrase in lower for phrase in config.phrases):
        return False
    if any(phrase in lower for phrase in config.reject_phrases):
        return False
    if category == 'new_hire' and not EXEC_TITLE_KEYWORDS.search(sentence):
        return False
    return True


def extract_snippets(html: str, source_url: str, seen: Optional[set] = None) -> List[Dict]:
    """
    Return [{category, text, source_url}] for one page. Pass ``seen`` to
    dedupe across pages; it is updated in place with normalized texts.
    """
    seen = set() if seen is None else seen
    sentences = _candidate_sentences(html)
    snippets = []

    for category, config in CATEGORY_CONFIGS.items():
        count = 0
        for sentence in sentences:
            if count >= config.max_per_page:
                break
            if not _matches(category, config, sentence):
                continue
            key = _normalize(sentence)
            if key in seen:
                continue
            seen.add(key)
            snippets.append({'category': category, 'text': sentence, 'source_url': source_url})
            count += 1

    if snippets:
        by_category: Dict[str, int] = {}
        for snippet in snippets:
            by_category[snippet['category']] = by_category.get(snippet['category'], 0) + 1
        logger.debug("%d snippets from %s (%s)", len(snippets), source_url,
                     ', '.join(f"{k}:{v}" for k, v in by_category.items()))
    return snippets


def extract_tagline(html: str) -> Optional[str]:
    """Meta description when it reads like a sentence."""
    if not html or 'description' not in html:
        return None
    soup = BeautifulSoup(html, 'html.parser')
    meta = soup.find('meta', attrs={'name': re.compile(r'^description$', re.I)}) \
        or soup.find('meta', attrs={'property': 'og:description'})
    if not meta or not meta.get('content'):
        return None
    text = ' '.join(meta['content'].split())
    if not (MIN_SNIPPET_LENGTH <= len(text) <= MAX_SNIPPET_LENGTH):
        return None
    if len(text.split()) < 5 or not is_clean_sentence(text):
        return None
    return text


def mentions_category(text: str, category: str) -> bool:
    """Whole-word match (plural or -or forms allowed) of any of a category's phrases."""
    lower = (text or '').lower()
    for phrase in CATEGORY_CONFIGS[category].phrases:
        if re.search(r'(?<![a-z0-9])' + re.escape(phrase) + r'(?:s|ors?)?(?![a-z0-9])', lower):
            return True
    return False
