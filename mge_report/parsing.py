import re
from datetime import datetime
from typing import Optional

from mge_report.constants import PROCESS_ID_SEPARATOR, CONTROL_SUFFIX, NULL_TOKENS

"""
Pure string parsers used to derive join keys and MGE parameters from the raw values in the
validation tables and lab sheets. None of these functions raise on bad input: whatever cannot
be interpreted comes back as None, and callers decide whether that deserves a warning.
"""

# A single number: digits with an optional fractional part
NUMBER_PATTERN = re.compile(r'^[+-]?(\d+(\.\d*)?|\.\d+)$')

# Day-month-year spellings seen in BOLD lab sheet exports
DATE_FORMATS = [
    '%d-%m-%Y',
    '%d/%m/%Y',
    '%d.%m.%Y',
    '%d-%b-%Y',
    '%d-%B-%Y',
    '%d %b %Y',
    '%d %B %Y',
    '%d/%b/%Y',
    '%d-%m-%y',
    '%d/%m/%y',
    '%d-%b-%y',
]


def extract_process_id(sequence_id: str) -> Optional[str]:
    """
    Extract the BOLD process ID from a sequence identifier.

    :param sequence_id: Full sequence identifier (e.g., 'BGE00123-24_r_1.3_s_100')
    :return: Process ID portion (e.g., 'BGE00123-24'), or the whole identifier if it has no separator;
             None if the identifier is empty or starts with the separator
    """
    process_id = sequence_id.split(PROCESS_ID_SEPARATOR, 1)[0]
    return process_id or None


def is_control(process_id: Optional[str]) -> bool:
    """
    Check whether a process ID belongs to a negative control sample.

    :param process_id: Process ID as returned by extract_process_id
    :return: True if the process ID carries the negative control suffix
    """
    if process_id is None:
        return False
    return process_id.endswith(CONTROL_SUFFIX)


def is_null_token(text: Optional[str]) -> bool:
    """Return True if the value is absent or one of the textual placeholders for absence."""
    if text is None:
        return True
    if isinstance(text, float) and text != text:
        return True
    return str(text).strip() in NULL_TOKENS


def parse_number(text: Optional[str]) -> Optional[float]:
    """
    Parse a single plain number.

    >>> parse_number(' 520 ')
    520.0
    >>> parse_number('1.3.4') is None
    True
    """
    if is_null_token(text):
        return None
    value = str(text).strip()
    if not NUMBER_PATTERN.match(value):
        return None
    return float(value)


def parse_bracketed_value(text: Optional[str]) -> Optional[float]:
    """
    Parse a parameter value as written by the NHM pipeline, i.e. a single number wrapped in square
    brackets, e.g. '[1.3]'. A bare number is accepted too. Empty, NA, non-numeric and multi-valued
    content (e.g. '[1.3, 1.5]') all yield None.

    :param text: Raw cell content
    :return: The parsed number or None
    """
    return parse_number(strip_brackets(text))


def strip_brackets(text: Optional[str]) -> Optional[str]:
    """Remove surrounding whitespace and one pair of surrounding square brackets, if any."""
    if text is None or (isinstance(text, float) and text != text):
        return None
    value = str(text).strip()
    if value.startswith('[') and value.endswith(']'):
        value = value[1:-1].strip()
    return value


def parse_embedded_value(sequence_id: Optional[str], marker: str) -> Optional[float]:
    """
    Parse a parameter value embedded in a sequence identifier as written by the Naturalis pipeline,
    e.g. 'BGE00123-24_r_1.3_s_100'. The value is the longest run of digits, with at most one decimal
    point, immediately following the first occurrence of the marker.

    :param sequence_id: Raw sequence identifier
    :param marker: Literal marker preceding the value, e.g. '_r_'
    :return: The parsed number or None if the marker is absent or not followed by digits
    """
    if is_null_token(sequence_id):
        return None
    match = re.search(re.escape(marker) + r'(\d+(?:\.\d+)?)', str(sequence_id))
    if match is None:
        return None
    return float(match.group(1))


def parse_collection_date(text: Optional[str]) -> Optional[datetime]:
    """
    Parse a day-month-year collection date.

    :param text: Raw date text, e.g. '12-06-2019', '12-Jun-2019' or '12 June 2019'
    :return: A datetime or None if the text is absent or in none of the known layouts
    """
    if is_null_token(text):
        return None
    value = str(text).strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None
