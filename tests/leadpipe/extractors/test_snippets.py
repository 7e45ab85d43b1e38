"""Tests for leadpipe.extractors.snippets: categorized sentence extraction."""
from leadpipe.extractors.snippets import (
    extract_snippets,
    extract_tagline,
    is_clean_sentence,
    mentions_category,
    split_sentences,
)


# ── Sentence handling ────────────────────────────────────────────────────────

class TestSplitSentences:

    def test_keeps_abbreviations_intact(self):
        text = 'Acme Inc. serves the U.S. market. We were founded in 1990.'
        assert split_sentences(text) == ['Acme Inc. serves the U.S. market.', 'We were founded in 1990.']

    def test_titles_not_split(self):
        assert split_sentences('Dr. Smith leads the team. Call today!') == [
            'Dr. Smith leads the team.', 'Call today!',
        ]


class TestIsCleanSentence:

    def test_too_many_caps_words(self):
        assert not is_clean_sentence('CALL NOW FOR FREE ESTIMATES TODAY')

    def test_nav_junk(self):
        assert not is_clean_sentence('Click here to read more about our services')

    def test_plain_sentence(self):
        assert is_clean_sentence('We have served Austin homeowners for decades.')


# ── extract_snippets ─────────────────────────────────────────────────────────

class TestExtractSnippets:

    def test_history_snippet(self):
        html = '<p>Acme Plumbing was founded in 1985 by John Smith in Austin.</p>'
        snippets = extract_snippets(html, 'https://acme.com/about')
        assert snippets == [{
            'category': 'history',
            'text': 'Acme Plumbing was founded in 1985 by John Smith in Austin.',
            'source_url': 'https://acme.com/about',
        }]

    def test_new_hire_needs_management_title(self):
        html = ('<p>We are pleased to welcome Jane Doe as our new General Manager.</p>'
                '<p>We are pleased to welcome Tom Lee to our crew this spring season.</p>')
        snippets = extract_snippets(html, 'https://acme.com/news')
        assert [s['text'] for s in snippets if s['category'] == 'new_hire'] == [
            'We are pleased to welcome Jane Doe as our new General Manager.',
        ]

    def test_new_hire_reject_phrase(self):
        html = '<p>We are pleased to welcome Tom Lee, our new lead technician and supervisor.</p>'
        assert extract_snippets(html, 'https://acme.com/news') == []

    def test_award_reject_phrase(self):
        html = '<p>Join our award winning rewards program and earn points on every visit.</p>'
        assert extract_snippets(html, 'https://acme.com/') == []

    def test_stripped_regions_ignored(self):
        html = ('<nav><p>Acme Plumbing was founded in 1985 by John Smith in Austin.</p></nav>'
                '<footer><p>Our company was founded in 1985 and has grown ever since.</p></footer>')
        assert extract_snippets(html, 'https://acme.com/') == []

    def test_per_page_cap(self):
        html = ''.join(
            f'<p>Texas contractor license # {1000 + i} is on file with the state board.</p>'
            for i in range(5)
        )
        licensing = [s for s in extract_snippets(html, 'https://acme.com/') if s['category'] == 'licensing']
        assert len(licensing) == 2

    def test_seen_set_dedupes_across_pages(self):
        html = '<p>Acme Plumbing was founded in 1985 by John Smith in Austin.</p>'
        seen = set()
        assert len(extract_snippets(html, 'https://acme.com/', seen)) == 1
        assert extract_snippets(html, 'https://acme.com/about', seen) == []

    def test_short_sentences_skipped(self):
        assert extract_snippets('<p>Founded in 1985.</p>', 'https://acme.com/') == []


# ── Tagline / mentions ───────────────────────────────────────────────────────

class TestExtractTagline:

    def test_meta_description(self):
        html = '<meta name="description" content="Family-owned plumbing company serving Austin since 1985.">'
        assert extract_tagline(html) == 'Family-owned plumbing company serving Austin since 1985.'

    def test_og_description_fallback(self):
        html = '<meta property="og:description" content="Licensed electricians for homes and offices in Dallas.">'
        assert extract_tagline(html) == 'Licensed electricians for homes and offices in Dallas.'

    def test_too_short(self):
        assert extract_tagline('<meta name="description" content="Plumbing">') is None


class TestMentionsCategory:

    def test_whole_word_phrase(self):
        assert mentions_category('We serve commercial clients across Texas', 'commercial_clients')

    def test_plural_and_or_forms(self):
        assert mentions_category('Trusted by local subcontractors', 'commercial_clients')
        assert mentions_category('Work for HOAs', 'commercial_clients')

    def test_no_partial_word_match(self):
        assert not mentions_category('Whoa, great service!', 'commercial_clients')
