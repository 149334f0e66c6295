import pytest

from app.utils import fuzzy_similarity, levenshtein_distance, normalize_title, parse_year


def test_normalize_title_strips_accents_and_punctuation():
    assert normalize_title("  Amélie: The  Movie!  ") == "amelie the movie"


def test_normalize_title_keeps_non_latin_letters():
    assert normalize_title("千と千尋の神隠し") == "千と千尋の神隠し"


@pytest.mark.parametrize(
    "value",
    ["Pokémon: Detective Pikachu", "İstanbul", "  WALL·E  ", "Spider-Man: No Way Home", ""],
)
def test_normalize_title_is_idempotent(value):
    once = normalize_title(value)
    assert normalize_title(once) == once


@pytest.mark.parametrize("value", ["Heat", "Amélie", "The Lord of the Rings"])
def test_fuzzy_similarity_identity(value):
    assert fuzzy_similarity(value, value) == 1.0


def test_fuzzy_similarity_containment():
    assert fuzzy_similarity("Alien", "Alien: Romulus") == 0.85


def test_fuzzy_similarity_edit_distance():
    # one substitution over five characters
    assert fuzzy_similarity("Heart", "Heard") == pytest.approx(0.8)


def test_levenshtein_distance_classic_examples():
    assert levenshtein_distance("kitten", "sitting") == 3
    assert levenshtein_distance("", "abc") == 3
    assert levenshtein_distance("flaw", "lawn") == 2


def test_parse_year():
    assert parse_year("2019-05-31") == 2019
    assert parse_year("2004-01-01T08:00:00Z") == 2004
    assert parse_year("") is None
    assert parse_year(None) is None
