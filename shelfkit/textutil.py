"""Text helpers used by the library browser: sizes, search and links."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

_LETTER = re.compile("[A-Za-zа-яА-ЯЁё]")
_NUMBER = re.compile(r"[+-]?\d+")
_UNITS = ("KB", "MB", "GB", "TB", "PB", "EB")


class LinkKind(Enum):
    """Target of a link in a book description."""

    AUTHOR = "author_"
    GENRE = "genre_"
    SERIAL = "seria_"


@dataclass(frozen=True)
class ReviewLink:
    """A parsed description link: what it points to and the list letter."""

    kind: LinkKind
    item_id: int
    letter: str


def format_data_size(size: int) -> str:
    """Format a byte count in binary units with one decimal place."""
    if size < 0:
        raise ValueError("size must not be negative")
    power = (size.bit_length() - 1) // 10 if size else 0
    if power == 0:
        return f"{size} bytes"
    power = min(power, len(_UNITS))
    return f"{size / 1024 ** power:.1f} {_UNITS[power - 1]}"


def author_matches(query: str, name: str) -> bool:
    """Tell whether every word of ``query`` matches a distinct word of ``name``.

    Words are compared case-insensitively; an empty query matches any name.
    """
    wanted = query.split()
    if not wanted:
        return True
    words = [word.casefold() for word in name.split(" ")]
    used: set[int] = set()
    for word in wanted:
        folded = word.casefold()
        position = next(
            (i for i, candidate in enumerate(words) if candidate == folded and i not in used),
            None,
        )
        if position is None:
            return False
        used.add(position)
    return True


def letter_filter_matches(search: str, name: str) -> bool:
    """Apply the alphabet filter of the author and series lists to ``name``.

    ``*`` matches everything, ``#`` matches names that do not start with a
    Latin or Cyrillic letter, anything else is a case-insensitive prefix.
    """
    if search == "*":
        return True
    if search == "#" and not _LETTER.search(name[:1]):
        return True
    return name.casefold().startswith(search.casefold())


def parse_review_link(path: str) -> ReviewLink | None:
    """Parse a link path such as ``author_T42`` from a book description.

    Returns None for paths that are not description links.  A malformed
    number yields id 0.
    """
    for kind in LinkKind:
        if path.startswith(kind.value):
            prefix = len(kind.value)
            number = path[prefix + 1:]
            item_id = int(number) if _NUMBER.fullmatch(number) else 0
            letter = "" if kind is LinkKind.GENRE else path[prefix:prefix + 1].upper()
            return ReviewLink(kind, item_id, letter)
    return None


def normalize_letter_search(text: str) -> tuple[str, str] | None:
    """Normalise the text typed into an alphabet search box.

    Leading ``*`` or ``#`` followed by more text are dropped.  Returns the
    resulting filter text and the upper-case letter whose button is to be
    checked, or None for empty text, where the previous letter stays.
    """
    if not text:
        return None
    while len(text) > 1 and text[0] in "*#":
        text = text[1:]
    return text, text[0].upper()