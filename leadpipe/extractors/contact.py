"""
Contact extraction: emails and phone numbers.

Two passes per channel:
  A. structured links (mailto:/tel:) are trusted as-is
  B. free-text regex matches go through junk filters, and phones additionally
     need a contact keyword within CONTEXT_WINDOW characters
"""
import logging
import re
from typing import Iterable, List, Optional

from bs4 import BeautifulSoup

logger = logging.getLogger('extractors.contact')

MAX_EMAILS = 10
MAX_PHONES = 5
CONTEXT_WINDOW = 80

# TLD capped at 6 chars to reject false positives like v@build.version
EMAIL_RE = re.compile(r'[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,6}')
PHONE_RE = re.compile(r'(?:\+1[-.\s]?)?\(?[2-9]\d{2}\)?[-.\s]?\d{3}[-.\s]?\d{4}')
PHONE_CONTEXT_RE = re.compile(
    r'\b(?:phone|call|tel|telephone|fax|contact|mobile|cell|office|text|reach|dial)\b|\bph\b',
    re.I,
)

_BLOCKED_EMAIL_DOMAINS = (
    'example.com', 'domain.com', 'email.com', 'yourdomain.com', 'yoursite.com',
    'sentry.io', 'sentry-next.wixpress.com', 'wixpress.com',
)
_BLOCKED_EMAIL_SUFFIXES = ('.png', '.jpg', '.jpeg', '.gif', '.svg', '.webp')


def normalize_phone(raw: str) -> str:
    """Digits only; an 11-digit number with leading country code 1 becomes 10 digits."""
    digits = re.sub(r'\D', '', raw or '')
    if len(digits) == 11 and digits.startswith('1'):
        digits = digits[1:]
    return digits


def is_fake_phone(digits: str) -> bool:
    """Reject placeholder numbers: repeated digits, straight runs, 555-01xx."""
    if len(digits) != 10:
        return True
    if len(set(digits)) == 1:
        return True
    if digits in '01234567890123456789' or digits in '98765432109876543210':
        return True
    if digits[3:6] == '555' and digits[6:8] == '01':
        return True
    most_common = max(digits.count(d) for d in set(digits))
    return most_common >= 7


def is_junk_email(email: str) -> bool:
    email = email.lower()
    domain = email.rsplit('@', 1)[-1]
    if any(domain == d or domain.endswith('.' + d) for d in _BLOCKED_EMAIL_DOMAINS):
        return True
    return email.endswith(_BLOCKED_EMAIL_SUFFIXES)


def _structured_hrefs(html: str, scheme: str) -> List[str]:
    if not html:
        return []
    soup = BeautifulSoup(html, 'html.parser')
    values = []
    for a in soup.find_all('a', href=re.compile(rf'^\s*{scheme}:', re.I)):
        value = a['href'].strip()[len(scheme) + 1:].split('?')[0].strip()
        if value:
            values.append(value)
    return values


def extract_emails(text: str, html: str = '') -> List[str]:
    """mailto: links first (unfiltered), then filtered free-text matches."""
    emails: List[str] = []

    for value in _structured_hrefs(html, 'mailto'):
        email = value.lower()
        if '@' in email and email not in emails:
            emails.append(email)

    for match in EMAIL_RE.finditer(text or ''):
        email = match.group(0).lower().strip('.')
        if email in emails or is_junk_email(email):
            continue
        emails.append(email)

    emails = emails[:MAX_EMAILS]
    if emails:
        logger.debug("Found %d emails: %s", len(emails), ', '.join(emails[:3]))
    return emails


def _has_phone_context(text: str, start: int, end: int) -> bool:
    window = text[max(0, start - CONTEXT_WINDOW):end + CONTEXT_WINDOW]
    return bool(PHONE_CONTEXT_RE.search(window))


def extract_phones(text: str, known_phones: Iterable[str] = (), html: str = '') -> List[str]:
    """
    tel: links first (trusted), then free-text matches that pass the fake-number
    filter and sit near a contact keyword. Known phones are excluded from the
    discovered list.
    """
    known = {normalize_phone(p) for p in known_phones if p}
    phones: List[str] = []

    for value in _structured_hrefs(html, 'tel'):
        digits = normalize_phone(value)
        if digits and digits not in phones and digits not in known:
            phones.append(digits)

    text = text or ''
    for match in PHONE_RE.finditer(text):
        digits = normalize_phone(match.group(0))
        if len(digits) != 10 or digits in phones or digits in known:
            continue
        if is_fake_phone(digits):
            continue
        if not _has_phone_context(text, match.start(), match.end()):
            continue
        phones.append(digits)

    phones = phones[:MAX_PHONES]
    if phones:
        logger.debug("Found %d phones: %s", len(phones), ', '.join(phones[:3]))
    return phones


CONTACT_PAGE_RE = re.compile(r'/(?:contact(?:-us)?|get-in-touch|reach-us)/?$', re.I)


def find_contact_page_url(urls: Iterable[str]) -> Optional[str]:
    for url in urls:
        if CONTACT_PAGE_RE.search(url.split('?')[0].split('#')[0]):
            return url
    return None
