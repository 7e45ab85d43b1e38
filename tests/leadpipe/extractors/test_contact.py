"""Tests for leadpipe.extractors.contact: emails, phones, contact page."""
import pytest

from leadpipe.extractors.contact import (
    MAX_EMAILS,
    extract_emails,
    extract_phones,
    find_contact_page_url,
    is_fake_phone,
    is_junk_email,
    normalize_phone,
)


# ── normalize_phone / is_fake_phone ──────────────────────────────────────────

class TestNormalizePhone:

    def test_strips_formatting(self):
        assert normalize_phone('(512) 478-1234') == '5124781234'

    def test_drops_leading_country_code(self):
        assert normalize_phone('+1 512-478-1234') == '5124781234'

    def test_none_is_empty(self):
        assert normalize_phone(None) == ''


class TestIsFakePhone:

    @pytest.mark.parametrize('digits', [
        '1111111111',       # repeated digit
        '0123456789',       # straight run
        '9876543210',       # descending run
        '5125550142',       # 555-01xx reserved range
        '5555555125',       # one digit dominates
        '512478123',        # too short
    ])
    def test_rejects_placeholders(self, digits):
        assert is_fake_phone(digits) is True

    def test_accepts_real_number(self):
        assert is_fake_phone('5124781234') is False


# ── Emails ───────────────────────────────────────────────────────────────────

class TestExtractEmails:

    def test_free_text_email(self):
        assert extract_emails('Write to info@acmeplumbing.com today') == ['info@acmeplumbing.com']

    def test_mailto_links_come_first(self):
        html = '<a href="mailto:Owner@Acme.com?subject=Hi">Email</a>'
        emails = extract_emails('office@acme.com', html=html)
        assert emails == ['owner@acme.com', 'office@acme.com']

    def test_mailto_link_kept_even_on_junk_domain(self):
        html = '<a href="mailto:info@example.com">Email us</a>'
        assert extract_emails('', html=html) == ['info@example.com']
        assert extract_emails('info@example.com') == []

    def test_junk_domains_dropped(self):
        text = 'user@example.com, bug@sentry.io, logo@2x.png, real@acme.com'
        assert extract_emails(text) == ['real@acme.com']

    def test_deduplicates_case_insensitively(self):
        assert extract_emails('Info@Acme.com and info@acme.com') == ['info@acme.com']

    def test_capped(self):
        text = ' '.join(f'person{i}@acme.com' for i in range(MAX_EMAILS + 5))
        assert len(extract_emails(text)) == MAX_EMAILS

    def test_is_junk_email_image_suffix(self):
        assert is_junk_email('hero@2x.jpg') is True
        assert is_junk_email('hello@acme.com') is False


# ── Phones ───────────────────────────────────────────────────────────────────

class TestExtractPhones:

    def test_needs_contact_keyword_nearby(self):
        assert extract_phones('Call us at (512) 478-9876') == ['5124789876']
        assert extract_phones('Order number 512 478 9876 shipped') == []

    def test_tel_links_trusted(self):
        html = '<a href="tel:+15124789876">Tap</a>'
        assert extract_phones('', html=html) == ['5124789876']

    def test_tel_link_kept_even_with_fake_exchange(self):
        html = '<a href="tel:5125550123">Call</a>'
        assert extract_phones('', html=html) == ['5125550123']
        assert extract_phones('Call 512-555-0123') == []

    def test_known_phone_excluded(self):
        text = 'Phone: 512-478-1234 or call 512-478-9876'
        assert extract_phones(text, known_phones=['(512) 478-1234']) == ['5124789876']

    def test_fake_numbers_dropped(self):
        assert extract_phones('Call 512-555-0123') == []


# ── Contact page ─────────────────────────────────────────────────────────────

class TestFindContactPageUrl:

    def test_matches_contact_paths(self):
        urls = ['https://acme.com/', 'https://acme.com/about', 'https://acme.com/contact-us/?ref=nav']
        assert find_contact_page_url(urls) == 'https://acme.com/contact-us/?ref=nav'

    def test_none_when_missing(self):
        assert find_contact_page_url(['https://acme.com/services']) is None
