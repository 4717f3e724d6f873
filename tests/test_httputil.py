from urllib.parse import quote, quote_plus, urlencode

import pytest

from fcgikit.httputil import (
    RequestMethod,
    atof,
    atoi,
    decode_url_encoded,
    percent_decode,
    to_text,
)


@pytest.mark.parametrize(
    "index,label",
    list(enumerate(["ERROR", "HEAD", "GET", "POST", "PUT", "DELETE", "TRACE",
                    "OPTIONS", "CONNECT", "PATCH"])),
)
def test_request_method_labels_and_order(index, label):
    method = RequestMethod[to_text(label.encode("ascii"))]
    assert method.name == label
    assert int(method) == index


def test_to_text_round_trip():
    for text in ["Hello World", "Привет мир", "世界您好", ""]:
        assert to_text(text.encode("utf-8")) == text


def test_to_text_invalid_utf8_is_empty():
    assert to_text(b"\xff\xfe") == ""


@pytest.mark.parametrize("number", [0, 7, 42, 123342945, -1413, -123342945112312323])
def test_atoi_round_trip(number):
    assert atoi(str(number).encode()) == number
    assert atoi(str(number)) == number


def test_atoi_stops_at_non_digit():
    assert atoi(b"12abc") == atoi(b"12")
    assert atoi(b"-34 56") == atoi(b"-34")


def test_atoi_without_digits_is_zero():
    assert atoi(b"") == 0
    assert atoi(b"abc") == 0
    assert atoi(b"-") == 0


def test_atof_exact_values():
    assert atof(b"1.5") == 1.5
    assert atof(b"-2.25") == -2.25
    assert atof("8") == 8.0


@pytest.mark.parametrize("value", ["3.14159", "-0.001", "2354.5", "123.456"])
def test_atof_close_to_float(value):
    assert atof(value.encode()) == pytest.approx(float(value), rel=1e-6)


def test_atof_empty_and_garbage():
    assert atof(b"") == 0.0
    assert atof(b"x1") == 0.0
    assert atof(b"4.5xyz") == atof(b"4.5")


def test_percent_decode_round_trip():
    for text in ["a b&c=d", "Γεια σας κόσμο", "100%", "/path/to?x"]:
        encoded = quote_plus(text).encode()
        assert percent_decode(encoded).decode("utf-8") == text
        assert percent_decode(quote(text, safe="").encode()).decode("utf-8") == text


def test_percent_decode_plus_is_space():
    assert percent_decode(b"a+b") == b"a b"


def test_percent_decode_upper_and_lower_hex_agree():
    assert percent_decode(b"%4A%4a") == percent_decode(b"%4a%4A")
    assert percent_decode(b"%4A") == b"J"


def test_percent_decode_drops_truncated_escape():
    assert percent_decode(b"ab%4") == percent_decode(b"ab")
    assert percent_decode(b"ab%") == percent_decode(b"ab")


def test_decode_url_encoded_round_trip():
    pairs = [("name", "value"), ("name", "other value"), ("ключ", "значение"),
             ("empty", "")]
    encoded = urlencode(pairs).encode()
    assert decode_url_encoded(encoded) == pairs


def test_decode_url_encoded_cookie_separator():
    pairs = [("session", "token"), ("theme", "dark")]
    encoded = "; ".join(f"{k}={v}" for k, v in pairs).encode()
    assert decode_url_encoded(encoded, "; ") == pairs
    assert decode_url_encoded(encoded, b"; ") == pairs


def test_decode_url_encoded_empty():
    assert decode_url_encoded(b"") == []


def test_decode_url_encoded_trailing_field_without_equals_dropped():
    assert decode_url_encoded(b"a=1&b") == decode_url_encoded(b"a=1")


def test_decode_url_encoded_field_without_equals_joins_next_name():
    assert decode_url_encoded(b"a&b=c") == [("a&b", "c")]


def test_decode_url_encoded_value_keeps_extra_equals():
    assert decode_url_encoded(b"k=x=y") == [("k", "x=y")]


def test_decode_url_encoded_rejects_empty_separator():
    with pytest.raises(ValueError):
        decode_url_encoded(b"a=1", "")