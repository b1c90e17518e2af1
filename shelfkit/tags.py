"""Tags on books, series and authors, ratings, and the export menu."""

from __future__ import annotations

import sqlite3
from collections import Counter
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from enum import Enum

from .options import ExportOptions

SEND_TO_LABEL = "Send to ..."
NO_PROFILE = -1
MAX_RATING = 5


class TagTable(Enum):
    """Kind of item a tag is attached to; the value names its link table."""

    BOOK = "book"
    SERIA = "seria"
    AUTHOR = "author"

    @property
    def link_table(self) -> str:
        return f"{self.value}_tag"

    @property
    def id_column(self) -> str:
        return f"id_{self.value}"


@dataclass(frozen=True)
class Tag:
    """A tag as stored in the database."""

    tag_id: int
    name: str
    icon_id: int


@dataclass(frozen=True)
class ExportMenuEntry:
    """One entry of the export menu.

    ``index`` is the position of the export profile, or -1 for the
    placeholder entry shown when no profile exists.
    """

    label: str
    index: int
    default: bool = False


def tag_display_name(name: str, translate: Callable[[str], str] | None = None) -> str:
    """Return the name of a tag as shown to the user.

    Surrounding blanks are removed.  Names made of ASCII characters only are
    built-in tag names and go through ``translate``; other names are shown
    as they are.
    """
    name = name.strip()
    if translate is not None and name.isascii():
        return translate(name)
    return name


def tag_counts(tag_lists: Iterable[Iterable[int]]) -> dict[int, int]:
    """Count in how many of the given tag lists each tag occurs."""
    counts: Counter[int] = Counter()
    for tags in tag_lists:
        counts.update(set(tags))
    return dict(counts)


def export_menu(export_options: Sequence[ExportOptions]) -> list[ExportMenuEntry]:
    """Build the entries of the export menu from the export profiles.

    The last profile marked as default becomes the default entry; if none
    is marked, the first entry is.  Without profiles a single placeholder
    entry is offered.
    """
    if not export_options:
        return [ExportMenuEntry(SEND_TO_LABEL, NO_PROFILE, True)]
    default_index = 0
    for index, profile in enumerate(export_options):
        if profile.default:
            default_index = index
    return [
        ExportMenuEntry(profile.name, index, index == default_index)
        for index, profile in enumerate(export_options)
    ]


class TagStore:
    """Reads tags and writes tag links and ratings in a library database."""

    def __init__(self, connection: sqlite3.Connection):
        self.connection = connection

    def load_tags(self) -> list[Tag]:
        """Return all tags in id order, names with blanks stripped."""
        rows = self.connection.execute(
            "SELECT id, name, id_icon FROM tag ORDER BY id"
        ).fetchall()
        return [
            Tag(int(tag_id), (name or "").strip(), int(icon_id or 0))
            for tag_id, name, icon_id in rows
        ]

    def set_tag(
        self,
        table: TagTable,
        item_id: int,
        tag_id: int,
        tag_ids: list[int],
        enabled: bool,
    ) -> None:
        """Attach or detach ``tag_id`` on an item.

        ``tag_ids`` is the item's own tag list and is updated to match the
        database.
        """
        table = TagTable(table)
        if enabled:
            tag_ids.append(tag_id)
            with self.connection:
                self.connection.execute(
                    f"INSERT INTO {table.link_table} ({table.id_column}, id_tag) VALUES (?, ?)",
                    (item_id, tag_id),
                )
            return
        if tag_id in tag_ids:
            tag_ids.remove(tag_id)
        if not self.connection.in_transaction:
            self.connection.execute("PRAGMA foreign_keys = ON")
        with self.connection:
            self.connection.execute(
                f"DELETE FROM {table.link_table} WHERE {table.id_column} = ? AND id_tag = ?",
                (item_id, tag_id),
            )

    def set_rating(self, book_id: int, rating: int) -> None:
        """Store a rating of 0 to 5 stars for a book."""
        if not 0 <= rating <= MAX_RATING:
            raise ValueError(f"rating must be between 0 and {MAX_RATING}")
        with self.connection:
            self.connection.execute(
                "UPDATE book SET star = ? WHERE id = ?", (rating, book_id)
            )