"""
Quake II color codes

Hostnames and player names may carry ``^0``-``^9`` escapes. The protocol
layer leaves them untouched; these helpers are for display.
"""

import html
import re

COLOR_CODE_RE = re.compile(r'\^[0-9]')

COLORS = {
    '0': '#000000',  # Black
    '1': '#FF0000',  # Red
    '2': '#00FF00',  # Green
    '3': '#FFFF00',  # Yellow
    '4': '#0000FF',  # Blue
    '5': '#00FFFF',  # Cyan
    '6': '#FF00FF',  # Magenta
    '7': '#FFFFFF',  # White
    '8': '#808080',  # Gray
    '9': '#FF8080',  # Light red
}


def strip_color_codes(text: str) -> str:
    """
    Remove color escapes.

    Example:
        >>> strip_color_codes('^1Red^7Server')
        'RedServer'
    """
    if not text:
        return text
    return COLOR_CODE_RE.sub('', text)


def convert_to_html(text: str) -> str:
    """
    Render color escapes as ``<span>`` elements.

    Each escape opens a span that stays open until the next one; all spans
    are closed at the end.

    Example:
        >>> convert_to_html('^1Red')
        '<span style="color: #FF0000">Red</span>'
    """
    if not text:
        return text

    result = []
    open_spans = 0
    i = 0
    while i < len(text):
        char = text[i]
        if char == '^' and i + 1 < len(text) and text[i + 1] in COLORS:
            if open_spans:
                result.append('</span>')
                open_spans -= 1
            result.append(f'<span style="color: {COLORS[text[i + 1]]}">')
            open_spans += 1
            i += 2
            continue
        result.append(html.escape(char))
        i += 1

    result.append('</span>' * open_spans)
    return ''.join(result)
