import pytest

from upnpwire.tmplfuncs import args


def test_pairs_become_mapping():
    value = object()
    assert args("first", 1, "second", value) == {"first": 1, "second": value}


def test_no_arguments():
    assert args() == {}


def test_keeps_order():
    assert list(args("b", 1, "a", 2)) == ["b", "a"]


def test_odd_number_of_arguments():
    with pytest.raises(ValueError, match="even number"):
        args("a", 1, "b")


def test_name_must_be_string():
    with pytest.raises(TypeError, match="argument 2"):
        args("a", 1, 5, 2)


def test_duplicate_name():
    with pytest.raises(ValueError, match="more than once"):
        args("a", 1, "a", 2)