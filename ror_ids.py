"""
Finds ROR IDs in free text.

Two sources are scanned:
- ROR urls, like `https://ror.org/03vek6s52`
- standalone 9-character tokens, like `(00hx57361)`, bounded by whitespace or simple punctuation

Standalone tokens must contain at least one digit and at least one letter.
The two sources are merged, de-duplicated, and sorted.
"""

import logging
import re

log = logging.getLogger(__name__)


## constants --------------------------------------------------------
URL_PATTERN: re.Pattern = re.compile(r'https?://ror\.org/([0-9a-z]{9})', re.IGNORECASE)
DELIMITERS: str = r'\s()\[\]{}:,;"|\'`'
STANDALONE_PATTERN: re.Pattern = re.compile(
    rf'(?<![^{DELIMITERS}])([0-9a-z]{{9}})(?![^{DELIMITERS}])', re.IGNORECASE
)  # negated lookarounds also match at the start and end of the text

SAMPLE_TEXT: str = """# Sample ROR Data
https://ror.org/03vek6s52 - Harvard University
MIT: https://ror.org/042nb2s44
Stanford University (00f54p054)
https://ror.org/03v76x132 - Yale University
Princeton (00hx57361)
Columbia University - https://ror.org/00hj8s172

The study included researchers from various institutions including
Oxford University (https://ror.org/052gg0110) and Cambridge (https://ror.org/013meh722).

You can paste any text containing ROR URLs or IDs above."""


class InputError(Exception):
    """
    Raised for input the user can correct, like empty text.
    """


class NoIdentifiersFound(InputError):
    def __init__(self, message: str = 'No ROR IDs found in the text. Please check your input format.') -> None:
        super().__init__(message)


class ExtractedSet:
    """
    Holds the result of one extraction pass.
    - `ids` is the sorted, de-duplicated list.
    - `url_ids` and `standalone_ids` keep first-occurrence order, for inspection.
    - `total_found` counts every match before de-duplication.
    """

    def __init__(self, url_ids: list[str], standalone_ids: list[str], total_found: int) -> None:
        self.url_ids: list[str] = url_ids
        self.standalone_ids: list[str] = standalone_ids
        self.total_found: int = total_found
        self.ids: list[str] = sorted(set(url_ids) | set(standalone_ids))

    @property
    def unique_count(self) -> int:
        return len(self.ids)

    def __len__(self) -> int:
        return len(self.ids)

    def __iter__(self):
        return iter(self.ids)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ExtractedSet):
            return NotImplemented
        return (self.ids, self.total_found) == (other.ids, other.total_found)

    def __repr__(self) -> str:
        return f'ExtractedSet(ids={self.ids!r}, total_found={self.total_found})'


def is_valid_standalone(token: str) -> bool:
    """
    Checks that a standalone token mixes digits and letters.
    All-digit or all-letter runs are too likely to be ordinary numbers or words.
    """
    has_digit: bool = any(char.isdigit() for char in token)
    has_letter: bool = any(char.isalpha() for char in token)
    return has_digit and has_letter


def unique_in_order(values: list[str]) -> list[str]:
    """
    De-duplicates while keeping first-occurrence order.
    """
    return list(dict.fromkeys(values))


def find_url_ids(text: str) -> list[str]:
    """
    Returns every id found inside a ROR url, lowercased, including repeats.
    Called by: extract()
    """
    return [match.group(1).lower() for match in URL_PATTERN.finditer(text)]


def find_standalone_ids(text: str) -> list[str]:
    """
    Returns every valid standalone id, lowercased, including repeats.
    A url id is preceded by `/`, which is not a delimiter, so url ids never show up here.
    Called by: extract()
    """
    found: list[str] = []
    for match in STANDALONE_PATTERN.finditer(text):
        token: str = match.group(1).lower()
        if is_valid_standalone(token):
            found.append(token)
    return found


def extract(text: str) -> ExtractedSet:
    """
    Extracts ROR IDs from text.
    Raises InputError for blank text, and NoIdentifiersFound when nothing matches.
    """
    if not text or not text.strip():
        raise InputError('Please paste some text containing ROR links or IDs.')
    url_matches: list[str] = find_url_ids(text)
    standalone_matches: list[str] = find_standalone_ids(text)
    log.debug(f'url_matches, ``{url_matches}``; standalone_matches, ``{standalone_matches}``')
    extracted = ExtractedSet(
        url_ids=unique_in_order(url_matches),
        standalone_ids=unique_in_order(standalone_matches),
        total_found=len(url_matches) + len(standalone_matches),
    )
    if not extracted.ids:
        raise NoIdentifiersFound()
    log.debug(f'found {extracted.total_found} match(es), {extracted.unique_count} unique')
    return extracted
