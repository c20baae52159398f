"""
Text cleaning utilities for material field values.

Source documents come from spreadsheet imports and web scrapes, so fields
may carry escaped characters, HTML tags, markdown links and ragged
whitespace.
"""

import re


def fix_escaped_characters(text):
    """
    Fix common escaped characters in imported text.

    Args:
        text (str): Raw field text

    Returns:
        str: Text with escaped characters converted
    """
    text = text.replace('\\n', ' ')
    text = text.replace('\\t', ' ')
    text = text.replace('\\"', '"')
    return text


def remove_html_tags(text):
    """Drop HTML tags and decode the few entities that appear in imports."""
    text = re.sub(r'<br\s*/?>', ' ', text, flags=re.IGNORECASE)
    text = re.sub(r'<[^>]+>', '', text)
    text = text.replace('&nbsp;', ' ').replace('&amp;', '&')
    return text


def convert_markdown_links(text):
    """
    Convert markdown links to their link text.

    Args:
        text (str): Text possibly containing [text](url) links

    Returns:
        str: Text with links replaced by their text
    """
    return re.sub(r'\[([^\]]+)\]\([^)]*\)', r'\1', text)


def normalize_whitespace(text):
    """Collapse runs of whitespace into single spaces."""
    return re.sub(r'\s+', ' ', text).strip()


def clean_field_text(text):
    """
    Apply every cleaning step to a single field value.

    Args:
        text: Field value (None and non-strings are accepted)

    Returns:
        str: Cleaned text, empty string for missing values
    """
    if text is None:
        return ""
    text = str(text)
    text = fix_escaped_characters(text)
    text = remove_html_tags(text)
    text = convert_markdown_links(text)
    return normalize_whitespace(text)


def contains_thai(text):
    """True when the text has any character in the Thai block."""
    return bool(re.search('[\u0e00-\u0e7f]', text or ""))
