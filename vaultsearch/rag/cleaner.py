"""Text cleaning applied to section labels and body lines."""
import re

from vaultsearch import config

# Embedded media: ![alt](target)
LINK_PATTERN = re.compile(r"!\[.*?\]\(.*?\)")


def remove_hashtags(text: str) -> str:
    return text.replace("#", "")


def remove_links(text: str) -> str:
    return LINK_PATTERN.sub("", text)


def clean_text(text: str, max_length: int = config.MAX_SECTION_LENGTH) -> str:
    """Strip markup noise and cap the length.

    Removes ``#`` characters and embedded media links, trims surrounding
    whitespace, then truncates to ``max_length`` characters. Applying it to
    its own output returns the same string.
    """
    cleaned = remove_links(remove_hashtags(text)).strip()
    return cleaned[:max_length].rstrip()
