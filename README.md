# shelfkit

Helpers for managing a personal e-book library.

## Modules

- **`shelfkit.mobi`**: edits MOBI/AZW files stored as Palm databases, at the
  byte level. Every function takes `bytes` and returns new `bytes`:
  - records: `section_count`, `section_bounds`, `read_section`,
    `write_section`, `insert_section`, `insert_section_range`,
    `delete_section_range`, `null_section`;
  - EXTH metadata in record 0: `read_exth`, `write_exth`, `add_exth`,
    `del_exth`;
  - integers: `get_int32`, `get_int16`, `int32_bytes`, `int16_bytes`,
    `write_int32`, `write_int16`.

  `MobiEditor(filename)` reads a combined MOBI 7 / KF8 file:
  - `save_mobi7(path, remove_personal, repair_cover)` writes only the MOBI 7 part.
  - `save_azw(path, remove_personal, repair_cover)` writes the KF8 part
    together with the shared images.
  - `add_exth_to_mobi(exth_num, exth_data)` marks the book as a personal
    document with a fresh identifier. It writes the result next to the
    source file with `501.mobi` appended to the name.

  Each of these returns `False` and writes nothing when the file has no
  KF8 part. Truncated or inconsistent data raises `MobiError`, a
  subclass of `ValueError`.
- **`shelfkit.options`**: dataclasses for the application settings
  (`Options`) and the export profiles (`ExportOptions`, `FontExportOptions`,
  `ToolsOptions`), and the `SendType` enum. `ExportOptions.send_type` is
  `SendType.DEVICE` when `send_to == "device"` and `SendType.MAIL` in every
  other case.
- **`shelfkit.textutil`**: text helpers.
  - `format_data_size` formats byte counts.
  - `author_matches` matches the words of a query case-insensitively, each
    against a different word of the name.
  - `letter_filter_matches` implements the alphabet filter: `*` matches
    everything, `#` matches names that do not start with a letter, and
    anything else is a prefix.
  - `normalize_letter_search` cleans up the text typed into the search box.
  - `parse_review_link` turns link paths such as `author_T42` into a
    `ReviewLink` with a `LinkKind`.
- **`shelfkit.tags`**: `TagStore` works on an `sqlite3.Connection`.
  - `load_tags` reads the tags.
  - `set_tag` attaches a tag to, or removes it from, a book, series or
    author (`TagTable`).
  - `set_rating` stores a rating of 0 to 5 stars.

  The module also has three plain functions:
  - `tag_display_name` trims a tag name and passes ASCII names through a
    translation callable.
  - `tag_counts` counts how many items carry each tag.
  - `export_menu` builds `ExportMenuEntry` items from the export profiles.

## Example

```python
from shelfkit.mobi import MobiEditor, MobiError

editor = MobiEditor("book.mobi")
try:
    if not editor.save_azw("book.azw3", remove_personal=True, repair_cover=True):
        print("no KF8 part in this file")
except MobiError as exc:
    print("cannot split:", exc)
```

```python
from shelfkit.textutil import author_matches, format_data_size

author_matches("tolstoy leo", "Tolstoy Leo Nikolaevich")  # True
format_data_size(2048)                                      # "2.0 KB"
```

## What it does not do

shelfkit is a library only:

- It has no command and no graphical browser.
- It has no in-memory catalog of books, authors, series and genres, and no
  search over one.
- `Options` and `ExportOptions` are plain data. They are not loaded from a
  settings file or saved to one.
- `TagStore` expects a database that already has the `tag`, `book_tag`,
  `seria_tag`, `author_tag` and `book` tables. It does not create them.

## Installation

```
pip install .
```

## Running the tests

```
pip install .[test]
pytest
```