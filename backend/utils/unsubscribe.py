"""
Unsubscribe link detection in HTML email bodies.
"""

from typing import Optional

from bs4 import BeautifulSoup


def find_unsubscribe_link(html: Optional[str]) -> Optional[str]:
    """
    Return the href of the first anchor whose text mentions "unsubscribe".

    Anchors are visited in document order and matching is case-insensitive.
    Returns None when there is no HTML, no matching anchor, or the matching
    anchor has no href.

    Example:
        >>> find_unsubscribe_link('<a href="https://x.io/u">Unsubscribe</a>')
        'https://x.io/u'
    """
    if not html:
        return None

    soup = BeautifulSoup(html, "html.parser")
    for anchor in soup.find_all("a"):
        if "unsubscribe" in anchor.get_text().lower():
            return anchor.get("href")

    return None
