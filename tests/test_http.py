import pytest

from fastcgikit.http import (
    RequestMethod,
    atof,
    atoi,
    decode_url_encoded,
    percent_escaped_to_bytes,
)


@pytest.mark.parametrize(
    "label",
    ["HEAD", "GET", "POST", "PUT", "DELETE", "TRACE", "OPTIONS", "CONNECT", "PATCH"],
)
def test_request_method_from_label_round_trip(label):
    method = RequestMethod.from_label(label)
    assert method.label == label
    assert RequestMethod.from_label(label.encode()) is method


@pytest.mark.parametrize("label", ["get", "FETCH", "", "POSTS"])
def test_request_method_unknown_is_error(label):
    assert RequestMethod.from_label(label) is RequestMethod.ERROR


def test_request_method_ordering_of_values():
    assert RequestMethod.from_label("bogus").value == 0
    assert RequestMethod.from_label("HEAD").value == 1
    assert RequestMethod.from_label("GET").value == 2
    assert RequestMethod.from_label("PATCH").value == 9


@pytest.mark.parametrize(
    "text, expected",
    [("123", 123), ("-45", -45), (b"789", 789), ("12ab", 12), ("", 0), ("x1", 0)],
)
def test_atoi(text, expected):
    assert atoi(text) == expected


def test_atoi_negation_symmetry():
    assert atoi("-9876") == -atoi("9876")


def test_atof_integer_and_fraction():
    assert atof("42") == 42.0
    assert atof("3.25") == pytest.approx(3.25)
    assert atof(b"-0.5") == pytest.approx(-0.5)


def test_atof_stops_at_other_characters_and_empty():
    assert atof("7.5kg") == pytest.approx(7.5)
    assert atof("") == 0.0


def test_atof_second_point_restarts_tenths():
    assert atof("1.2.5") == pytest.approx(1.7)


def test_percent_escaped_to_bytes_hex_and_plus():
    assert percent_escaped_to_bytes(b"%41%62c+d") == b"Abc d"
    assert percent_escaped_to_bytes(b"%2f%2F") == b"//"


def test_percent_escaped_to_bytes_utf8_round_trip():
    text = "Привет мир"
    escaped = "".join(f"%{byte:02X}" for byte in text.encode("utf-8"))
    assert percent_escaped_to_bytes(escaped.encode()).decode("utf-8") == text


def test_percent_escaped_to_bytes_truncated_escape_dropped():
    assert percent_escaped_to_bytes(b"ab%4") == b"ab"
    assert percent_escaped_to_bytes(b"ab%") == b"ab"


def test_percent_escaped_plain_passthrough():
    data = b"plain-text_with.chars~"
    assert percent_escaped_to_bytes(data) == data


def test_decode_url_encoded_basic():
    assert decode_url_encoded(b"a=1&b=2") == [("a", "1"), ("b", "2")]


def test_decode_url_encoded_sorted_by_name_stable():
    result = decode_url_encoded(b"b=2&a=1&b=3")
    assert result == [("a", "1"), ("b", "2"), ("b", "3")]


def test_decode_url_encoded_escapes():
    result = decode_url_encoded(b"first+name=Jane%20Doe&x%3D=%26")
    assert dict(result) == {"first name": "Jane Doe", "x=": "&"}


def test_decode_url_encoded_cookie_separator():
    result = decode_url_encoded(b"session=token; theme=dark", "; ")
    assert result == [("session", "token"), ("theme", "dark")]


def test_decode_url_encoded_empty_value_and_trailing_separator():
    assert decode_url_encoded(b"a=&b=2&") == [("a", ""), ("b", "2")]


def test_decode_url_encoded_field_without_equals_joins_next_name():
    assert decode_url_encoded(b"abc&x=1") == [("abc&x", "1")]


def test_decode_url_encoded_value_keeps_later_equals():
    assert decode_url_encoded(b"k=a=b") == [("k", "a=b")]


def test_decode_url_encoded_invalid_utf8_value_is_empty():
    assert decode_url_encoded(b"k=%FF%FE") == [("k", "")]


def test_decode_url_encoded_empty_input():
    assert decode_url_encoded(b"") == []


def test_decode_url_encoded_empty_separator_rejected():
    with pytest.raises(ValueError):
        decode_url_encoded(b"a=1", b"")