"""
Founded-year extraction.
"""
import logging
import re
from datetime import datetime
from typing import Optional, Tuple

logger = logging.getLogger('extractors.history')

FOUNDED_YEAR_RE = re.compile(
    r'\b(?:founded|established|est\.?|since|started|opened|incorporated)\s+(?:in\s+)?(1[89]\d{2}|20\d{2})\b', re.I
)
YEARS_IN_BUSINESS_RE = re.compile(
    r'\b(\d{1,3})\+?\s+years\s+(?:in\s+business|of\s+service|serving|in\s+the\s+industry|and\s+counting)\b', re.I
)
ANNIVERSARY_RE = re.compile(r'\b(\d{1,3})(?:st|nd|rd|th)\s+anniversary\b', re.I)
FAMILY_OWNED_RE = re.compile(
    r'\bfamily[- ](?:owned|operated)(?:\s+and\s+operated)?\s+since\s+(1[89]\d{2}|20\d{2})\b', re.I
)


def extract_founded_year(text: str) -> Tuple[Optional[int], Optional[str]]:
    """
    Return (year, source phrase). Patterns are tried in order: explicit
    founded/established year, "N years in business", "Nth anniversary",
    "family-owned since YYYY".
    """
    text = text or ''
    current_year = datetime.now().year

    for match in FOUNDED_YEAR_RE.finditer(text):
        year = int(match.group(1))
        if 1800 <= year <= current_year:
            logger.debug("Founded %d from '%s'", year, match.group(0))
            return year, match.group(0)

    for pattern in (YEARS_IN_BUSINESS_RE, ANNIVERSARY_RE):
        for match in pattern.finditer(text):
            years = int(match.group(1))
            if 0 < years < 200:
                logger.debug("Founded ~%d (%d years) from '%s'", current_year - years, years, match.group(0))
                return current_year - years, match.group(0)

    for match in FAMILY_OWNED_RE.finditer(text):
        year = int(match.group(1))
        if 1800 <= year <= current_year:
            return year, match.group(0)

    return None, None
