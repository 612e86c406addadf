"""
Tests for unsubscribe link detection in HTML bodies.
"""

from utils.unsubscribe import find_unsubscribe_link


class TestFindUnsubscribeLink:
    """Tests for find_unsubscribe_link."""

    def test_returns_matching_href(self, sample_html: str):
        assert find_unsubscribe_link(sample_html) == "https://shop.example.com/unsub?u=42"

    def test_first_match_in_document_order(self):
        html = (
            '<a href="https://a.example.com/first">Unsubscribe here</a>'
            '<a href="https://a.example.com/second">unsubscribe</a>'
        )
        assert find_unsubscribe_link(html) == "https://a.example.com/first"

    def test_case_insensitive(self):
        html = '<a href="https://x.example.com/u">CLICK TO UNSUBSCRIBE</a>'
        assert find_unsubscribe_link(html) == "https://x.example.com/u"

    def test_matches_nested_text(self):
        html = '<a href="https://x.example.com/u"><span>Un</span><b>subscribe</b></a>'
        assert find_unsubscribe_link(html) == "https://x.example.com/u"

    def test_matches_text_not_href(self):
        """Only the visible text counts, not the URL."""
        html = '<a href="https://x.example.com/unsubscribe">Manage preferences</a>'
        assert find_unsubscribe_link(html) is None

    def test_no_matching_anchor(self):
        assert find_unsubscribe_link('<a href="https://x.example.com">Home</a>') is None

    def test_empty_or_missing_html(self):
        assert find_unsubscribe_link(None) is None
        assert find_unsubscribe_link("") is None

    def test_matching_anchor_without_href(self):
        assert find_unsubscribe_link("<a>Unsubscribe</a>") is None

    def test_malformed_html(self):
        html = '<div><p>Bye<a href="https://x.example.com/u">unsubscribe<div></p>'
        assert find_unsubscribe_link(html) == "https://x.example.com/u"
