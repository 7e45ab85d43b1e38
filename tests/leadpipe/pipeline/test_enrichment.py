"""Tests for leadpipe.pipeline.enrichment: per-lead merge of page extractors."""
import json
import pytest
from types import SimpleNamespace
from unittest.mock import patch

from leadpipe.pipeline.enrichment import (
    ExtractedData,
    ScrapedPage,
    extract_all,
    extract_page_data,
    page_priority,
    stored_page_source,
)


# ── Fixtures ─────────────────────────────────────────────────────────────────

@pytest.fixture
def home_page():
    html = '''
    <html><head>
      <meta name="description" content="Family-owned plumbing company serving Austin since 1985.">
      <script type="application/ld+json">
        {"@type": "Plumber", "email": "hello@acmeplumbing.com", "foundingDate": "1985",
         "sameAs": ["https://www.facebook.com/acmeplumbing"], "founder": {"name": "John Smith"}}
      </script>
    </head><body>
      <p>Acme Plumbing was founded in 1985 by John Smith in Austin.</p>
      <a href="https://instagram.com/acmeplumbing">Instagram</a>
    </body></html>
    '''
    text = 'Acme Plumbing was founded in 1985 by John Smith in Austin. Call us: (512) 478-9876'
    return ScrapedPage(url='https://acme.com/', html=html, text_content=text, title='Home')


@pytest.fixture
def about_page():
    html = '<p>We are a team of 12 licensed plumbers serving Travis County and surrounding areas.</p>'
    text = ('We are a team of 12 licensed plumbers.\n'
            'John Smith, Owner\n'
            'Sarah Lee - Office Manager\n'
            'Email office@acmeplumbing.com')
    return ScrapedPage(url='https://acme.com/about', html=html, text_content=text, title='About')


# ── Helpers ──────────────────────────────────────────────────────────────────

class TestPagePriority:

    def test_about_before_contact_before_other(self):
        assert page_priority('https://acme.com/about-us') == 0
        assert page_priority('https://acme.com/contact') == 1
        assert page_priority('https://acme.com/blog') == 5


class TestScrapedPage:

    def test_from_dict_accepts_text_alias(self):
        page = ScrapedPage.from_dict({'url': 'https://acme.com', 'text': 'hi'})
        assert page.text_content == 'hi'
        assert page.html == ''


class TestExtractPageData:

    def test_failing_extractor_degrades_to_default(self):
        page = ScrapedPage(url='https://acme.com/', html='<p>x</p>', text_content='info@acme.com')
        with patch('leadpipe.pipeline.enrichment.extract_schema_org', side_effect=RuntimeError('boom')):
            data = extract_page_data(page)
        assert data['schema'] is None
        assert data['emails'] == ['info@acme.com']


# ── extract_all ──────────────────────────────────────────────────────────────

class TestExtractAll:

    def test_merges_pages(self, home_page, about_page):
        data = extract_all([home_page, about_page])
        assert data.emails == ['office@acmeplumbing.com', 'hello@acmeplumbing.com']
        assert data.email_sources['hello@acmeplumbing.com'] == 'https://acme.com/'
        assert data.social == {
            'facebook': 'https://www.facebook.com/acmeplumbing',
            'instagram': 'https://instagram.com/acmeplumbing',
        }
        assert data.founded_year == 1985
        assert data.headcount_estimate == 12
        assert data.tagline == 'Family-owned plumbing company serving Austin since 1985.'

    def test_team_deduped_with_schema_founder(self, home_page, about_page):
        data = extract_all([home_page, about_page])
        names = {m['name']: m for m in data.team_members}
        assert set(names) == {'John Smith', 'Sarah Lee'}
        assert names['John Smith']['is_executive'] is True

    def test_snippets_deduped_across_pages(self, home_page):
        duplicate = ScrapedPage(url='https://acme.com/history', html=home_page.html, text_content='')
        data = extract_all([home_page, duplicate])
        history = [s for s in data.snippets if s['category'] == 'history']
        assert len(history) == 1

    def test_known_phone_confirmation_collapses_list(self):
        pages = [
            ScrapedPage(url='https://acme.com/', text_content='Call (512) 478-9876 today'),
            ScrapedPage(url='https://acme.com/contact', text_content='Phone: 512-478-1234'),
        ]
        data = extract_all(pages, known_phones=['(512) 478-1234'])
        assert data.phones == ['5124781234']
        assert data.phone_sources == {'5124781234': 'https://acme.com/contact'}
        assert data.contact_page_url == 'https://acme.com/contact'

    def test_other_phones_kept_without_confirmation(self):
        pages = [ScrapedPage(url='https://acme.com/', text_content='Call (512) 478-9876 today')]
        data = extract_all(pages, known_phones=['5124781234'])
        assert data.phones == ['5124789876']

    def test_schema_employee_count_beats_text(self):
        html = '<script type="application/ld+json">{"@type": "Organization", "numberOfEmployees": 40}</script>'
        page = ScrapedPage(url='https://acme.com/', html=html, text_content='A team of 12 experts.')
        data = extract_all([page])
        assert data.headcount_estimate == 40

    def test_empty_pages(self):
        data = extract_all([])
        assert data == ExtractedData()

    def test_lead_fields_subset(self, home_page):
        fields = extract_all([home_page]).lead_fields()
        assert set(fields) == {
            'emails', 'phones', 'social', 'contact_page_url', 'team_members',
            'headcount_estimate', 'founded_year', 'snippets', 'tagline',
        }


# ── stored_page_source ───────────────────────────────────────────────────────

class TestStoredPageSource:

    def test_reads_json_pages_for_lead(self, fake_store):
        fake_store.put('scrape-pages/lead-1/00.json', {'url': 'https://acme.com/', 'html': '<p>hi</p>'})
        fake_store.put('scrape-pages/lead-1/01.json', {'url': 'https://acme.com/about', 'text_content': 'about'})
        fake_store.put('scrape-pages/lead-1/notes.txt', 'ignored')
        fake_store.put('scrape-pages/lead-10/00.json', {'url': 'https://other.com/'})

        pages = stored_page_source(SimpleNamespace(id='lead-1'))
        assert [p.url for p in pages] == ['https://acme.com/', 'https://acme.com/about']
        assert pages[1].text_content == 'about'
