"""Tests for leadpipe.extractors.schema_org: JSON-LD business fields."""
import json

from leadpipe.extractors.schema_org import extract_schema_org


def _page(*blocks):
    scripts = ''.join(
        f'<script type="application/ld+json">{b if isinstance(b, str) else json.dumps(b)}</script>'
        for b in blocks
    )
    return f'<html><head>{scripts}</head><body></body></html>'


class TestExtractSchemaOrg:

    def test_local_business_fields(self):
        html = _page({
            '@context': 'https://schema.org',
            '@type': 'Plumber',
            'name': 'Acme Plumbing',
            'email': 'mailto:Info@Acme.com',
            'telephone': '+1-512-478-1234',
            'foundingDate': '1985-03-01',
            'sameAs': ['https://facebook.com/acme', 'https://www.linkedin.com/company/acme'],
            'numberOfEmployees': {'@type': 'QuantitativeValue', 'value': 12},
            'founder': {'@type': 'Person', 'name': 'John Smith'},
        })
        data = extract_schema_org(html)
        assert data['name'] == 'Acme Plumbing'
        assert data['email'] == 'info@acme.com'
        assert data['telephone'] == '+1-512-478-1234'
        assert data['founding_year'] == 1985
        assert data['number_of_employees'] == 12
        assert data['founder'] == 'John Smith'
        assert data['same_as'] == ['https://facebook.com/acme', 'https://www.linkedin.com/company/acme']

    def test_graph_and_first_value_wins(self):
        html = _page(
            {'@graph': [{'@type': 'WebSite', 'name': 'Site'}, {'@type': 'Organization', 'name': 'Acme'}]},
            {'@type': 'LocalBusiness', 'name': 'Acme Duplicate', 'sameAs': 'https://x.com/acme'},
        )
        data = extract_schema_org(html)
        assert data['name'] == 'Acme'
        assert data['same_as'] == ['https://x.com/acme']

    def test_non_business_types_ignored(self):
        assert extract_schema_org(_page({'@type': 'WebSite', 'name': 'Acme'})) is None

    def test_malformed_block_skipped(self):
        html = _page('{not json', {'@type': 'Organization', 'name': 'Acme'})
        assert extract_schema_org(html) == {'name': 'Acme'}

    def test_implausible_founding_date_dropped(self):
        data = extract_schema_org(_page({'@type': 'Organization', 'foundingDate': '1492'}))
        assert 'founding_year' not in data

    def test_no_json_ld(self):
        assert extract_schema_org('<html><body>Hi</body></html>') is None
