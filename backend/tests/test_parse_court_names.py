"""Court name parsing: string and list inputs must both produce clean labels."""
from app.utils.courts import parse_court_names


def test_parse_court_names_string_comma_separated():
    """'1,5,6' parses to ['1','5','6'], never list('1,5,6')."""
    assert parse_court_names("1,5,6") == ["1", "5", "6"]


def test_parse_court_names_list_unchanged():
    assert parse_court_names(["Court 1", "Court 2"]) == ["Court 1", "Court 2"]


def test_parse_court_names_none_or_empty():
    assert parse_court_names(None) == []
    assert parse_court_names("") == []
    assert parse_court_names("   ") == []
    assert parse_court_names([]) == []


def test_parse_court_names_strips_and_coerces():
    assert parse_court_names(" 1 , 5 , 6 ") == ["1", "5", "6"]
    assert parse_court_names([1, 5, 6]) == ["1", "5", "6"]


def test_parse_court_names_drops_repeats_keeping_order():
    assert parse_court_names(["B", "A", " B ", ""]) == ["B", "A"]
    assert parse_court_names(("2", "1", "2")) == ["2", "1"]
