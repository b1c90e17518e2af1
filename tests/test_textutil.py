import pytest

from shelfkit.textutil import (
    LinkKind,
    ReviewLink,
    author_matches,
    format_data_size,
    letter_filter_matches,
    normalize_letter_search,
    parse_review_link,
)


def test_format_small_sizes_are_bytes():
    assert format_data_size(512) == "512 bytes"
    assert format_data_size(1023).endswith(" bytes")


def test_format_one_kilobyte():
    assert format_data_size(1024) == "1.0 KB"


@pytest.mark.parametrize("size", [1024, 2048, 5000, 1024 * 1023])
def test_format_kilobyte_range(size):
    text = format_data_size(size)
    number, unit = text.split(" ")
    assert unit == "KB"
    assert float(number) == pytest.approx(size / 1024, abs=0.05)


def test_format_units_grow():
    assert format_data_size(1024 ** 2).split(" ")[1] == "MB"
    assert format_data_size(1024 ** 3).split(" ")[1] == "GB"
    assert format_data_size(3 * 1024 ** 3).split(" ")[0] == "3.0"


def test_format_negative_rejected():
    with pytest.raises(ValueError):
        format_data_size(-1)


def test_author_empty_query_matches():
    assert author_matches("", "Tolstoy Leo") is True
    assert author_matches("   ", "Tolstoy Leo") is True


def test_author_words_in_any_order_case_insensitive():
    assert author_matches("leo TOLSTOY", "Tolstoy Leo Nikolayevich") is True


def test_author_missing_word_fails():
    assert author_matches("Leo Chekhov", "Tolstoy Leo") is False


def test_author_word_used_once():
    assert author_matches("Leo Leo", "Tolstoy Leo") is False
    assert author_matches("Leo Leo", "Leo Tolstoy Leo") is True


def test_author_partial_word_does_not_match():
    assert author_matches("Tol", "Tolstoy Leo") is False


def test_letter_filter_star_matches_all():
    assert letter_filter_matches("*", "anything") is True
    assert letter_filter_matches("*", "") is True


def test_letter_filter_hash():
    assert letter_filter_matches("#", "1984 fans") is True
    assert letter_filter_matches("#", "Orwell") is False
    assert letter_filter_matches("#", "Ёлкин") is False
    assert letter_filter_matches("#", "") is True


def test_letter_filter_prefix():
    assert letter_filter_matches("to", "Tolstoy") is True
    assert letter_filter_matches("T", "Chekhov") is False
    assert letter_filter_matches("пу", "Пушкин") is True


def test_parse_author_link():
    assert parse_review_link("author_t42") == ReviewLink(LinkKind.AUTHOR, 42, "T")


def test_parse_serial_link():
    assert parse_review_link("seria_W7") == ReviewLink(LinkKind.SERIAL, 7, "W")


def test_parse_genre_link():
    link = parse_review_link("genre_F15")
    assert link.kind is LinkKind.GENRE
    assert link.item_id == 15


def test_parse_unknown_link():
    assert parse_review_link("http_x1") is None


def test_parse_bad_number_gives_zero():
    assert parse_review_link("author_Xabc").item_id == 0


@pytest.mark.parametrize("item_id,name", [(1, "Tolstoy"), (123456, "пушкин"), (9, "Zed")])
def test_author_link_round_trip(item_id, name):
    path = f"author_{name[0]}{item_id}"
    link = parse_review_link(path)
    assert link.item_id == item_id
    assert link.letter == name[0].upper()
    assert link.kind is LinkKind.AUTHOR


def test_normalize_empty():
    assert normalize_letter_search("") is None


def test_normalize_plain_text():
    assert normalize_letter_search("tol") == ("tol", "T")


def test_normalize_strips_marker():
    assert normalize_letter_search("*ab") == ("ab", "A")
    assert normalize_letter_search("#*x") == ("x", "X")


def test_normalize_lone_marker_kept():
    assert normalize_letter_search("*") == ("*", "*")
    assert normalize_letter_search("#") == ("#", "#")