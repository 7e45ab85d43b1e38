"""
Schema.org JSON-LD extraction: merges business-typed blocks from one page.
"""
import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from bs4 import BeautifulSoup

logger = logging.getLogger('extractors.schema_org')

SCHEMA_TYPES_OF_INTEREST = {
    'LocalBusiness', 'Organization', 'Corporation', 'HomeAndConstructionBusiness',
    'ProfessionalService', 'FinancialService', 'InsuranceAgency', 'RealEstateAgent',
    'LegalService', 'Dentist', 'Physician', 'Store', 'Restaurant', 'AutoRepair',
    'Plumber', 'Electrician', 'HVACBusiness', 'RoofingContractor', 'GeneralContractor',
}


def _employee_count(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, dict):
        inner = value.get('value') or value.get('minValue')
        if isinstance(inner, (int, float)) and not isinstance(inner, bool):
            return int(inner)
    return None


def _items(data: Any):
    if isinstance(data, list):
        for entry in data:
            yield from _items(entry)
    elif isinstance(data, dict):
        if isinstance(data.get('@graph'), list):
            yield from _items(data['@graph'])
        else:
            yield data


def extract_schema_org(html: str) -> Optional[Dict[str, Any]]:
    """
    Return merged Schema.org fields (email, telephone, name, description,
    founding_year, same_as, number_of_employees, founder), or None when the page
    has no business-typed JSON-LD. First value wins per field; sameAs is unioned.
    """
    if not html or 'ld+json' not in html:
        return None

    soup = BeautifulSoup(html, 'html.parser')
    merged: Dict[str, Any] = {}
    same_as = []
    found = False
    current_year = datetime.now().year

    for script in soup.find_all('script', type='application/ld+json'):
        try:
            data = json.loads(script.string or script.get_text() or '')
        except ValueError:
            continue

        for item in _items(data):
            item_type = item.get('@type')
            types = item_type if isinstance(item_type, list) else [item_type]
            if not any(t in SCHEMA_TYPES_OF_INTEREST for t in types if isinstance(t, str)):
                continue
            found = True

            if item.get('email') and 'email' not in merged:
                merged['email'] = str(item['email']).replace('mailto:', '').strip().lower()
            if item.get('telephone') and 'telephone' not in merged:
                merged['telephone'] = str(item['telephone'])
            for key in ('name', 'description'):
                if item.get(key) and key not in merged:
                    merged[key] = str(item[key])

            if item.get('foundingDate') and 'founding_year' not in merged:
                try:
                    year = int(str(item['foundingDate'])[:4])
                except ValueError:
                    year = None
                if year and 1800 <= year <= current_year:
                    merged['founding_year'] = year

            raw_same_as = item.get('sameAs')
            if raw_same_as:
                urls = raw_same_as if isinstance(raw_same_as, list) else [raw_same_as]
                same_as.extend(u for u in urls if isinstance(u, str) and u.startswith('http'))

            employees = _employee_count(item.get('numberOfEmployees'))
            if employees and 'number_of_employees' not in merged:
                merged['number_of_employees'] = employees

            founder = item.get('founder')
            if founder and 'founder' not in merged:
                if isinstance(founder, str):
                    merged['founder'] = founder
                elif isinstance(founder, dict) and founder.get('name'):
                    merged['founder'] = str(founder['name'])

    if not found:
        return None
    if same_as:
        merged['same_as'] = list(dict.fromkeys(same_as))
    logger.debug("Schema.org fields: %s", ', '.join(sorted(merged)))
    return merged
