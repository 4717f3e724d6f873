import ipaddress
from datetime import datetime, timezone

import pytest

from fcgikit.environment import Environment, File
from fcgikit.httputil import RequestMethod
from fcgikit.protocol import encode_param


def params(**pairs):
    return b"".join(
        encode_param(name.encode(), value.encode("utf-8"))
        for name, value in pairs.items()
    )


def filled(**pairs):
    environment = Environment()
    environment.fill(params(**pairs))
    return environment


def test_text_fields():
    env = filled(
        HTTP_HOST="example.com",
        SCRIPT_NAME="/app.fcgi",
        REQUEST_URI="/app.fcgi/a?b=c",
        HTTP_USER_AGENT="tester",
        DOCUMENT_ROOT="/srv/www",
        HTTP_REFERER="https://example.com/",
    )
    assert env.host == "example.com"
    assert env.script_name == "/app.fcgi"
    assert env.request_uri == "/app.fcgi/a?b=c"
    assert env.user_agent == "tester"
    assert env.root == "/srv/www"
    assert env.referer == "https://example.com/"


def test_numbers_and_addresses():
    env = filled(
        SERVER_PORT="8080",
        REMOTE_PORT="51234",
        CONTENT_LENGTH="42",
        SERVER_ADDR="127.0.0.1",
        REMOTE_ADDR="::1",
    )
    assert env.server_port == 8080
    assert env.remote_port == 51234
    assert env.content_length == 42
    assert env.server_address == ipaddress.ip_address("127.0.0.1")
    assert env.remote_address == ipaddress.ip_address("::1")


@pytest.mark.parametrize("method", list(RequestMethod))
def test_request_methods(method):
    assert filled(REQUEST_METHOD=method.name).request_method is method


def test_unknown_request_method():
    assert filled(REQUEST_METHOD="FETCH").request_method is RequestMethod.ERROR


def test_path_info_segments_are_decoded():
    env = filled(PATH_INFO="/one//two%20three/")
    assert env.path_info == ["one", "two three"]


def test_query_string_and_cookies():
    env = filled(QUERY_STRING="a=1&b=x%2By&a=2", HTTP_COOKIE="sid=token; theme=dark")
    assert env.gets == [("a", "1"), ("b", "x+y"), ("a", "2")]
    assert env.cookies == [("sid", "token"), ("theme", "dark")]


def test_content_type_with_boundary():
    env = filled(CONTENT_TYPE="multipart/form-data; boundary=XyZ")
    assert env.content_type == "multipart/form-data"
    assert env.boundary == b"XyZ"


def test_accept_language():
    env = filled(HTTP_ACCEPT_LANGUAGE="en-US, fr;q=0.8,de")
    assert env.accept_languages == ["en_US", "fr", "de"]


def test_if_modified_since():
    env = filled(HTTP_IF_MODIFIED_SINCE="Sun, 06 Nov 1994 08:49:37 GMT")
    expected = datetime(1994, 11, 6, 8, 49, 37, tzinfo=timezone.utc).timestamp()
    assert env.if_modified_since == int(expected)
    assert filled(HTTP_IF_MODIFIED_SINCE="Thu, 01 Jan 1970 00:00:00 GMT").if_modified_since == 0


def test_unrecognised_parameters_go_to_others():
    env = filled(GATEWAY_INTERFACE="CGI/1.1", HTTP_HOST="example.com")
    assert env.others == {"GATEWAY_INTERFACE": "CGI/1.1"}


def test_empty_post_buffer_parses():
    env = Environment()
    assert env.parse_post_buffer() is True
    assert env.posts == []


def test_url_encoded_post():
    env = filled(CONTENT_TYPE="application/x-www-form-urlencoded")
    env.fill_post_buffer(b"name=J%C3%BCrgen&")
    env.fill_post_buffer(b"age=30")
    assert env.parse_post_buffer() is True
    assert env.posts == [("name", "J\u00fcrgen"), ("age", "30")]


def test_unknown_post_type_not_parsed():
    env = filled(CONTENT_TYPE="text/plain")
    env.fill_post_buffer(b"a=b")
    assert env.parse_post_buffer() is False
    assert env.posts == []


def test_multipart_post():
    env = filled(CONTENT_TYPE="multipart/form-data; boundary=BOUND")
    body = (
        b"--BOUND\r\n"
        b'Content-Disposition: form-data; name="field"\r\n'
        b"\r\n"
        b"hello world\r\n"
        b"--BOUND\r\n"
        b'Content-Disposition: form-data; name="upload"; filename="a.bin"\r\n'
        b"Content-Type: application/octet-stream\r\n"
        b"\r\n"
        b"\x00\x01\x02\r\n"
        b"--BOUND--\r\n"
    )
    env.fill_post_buffer(body)
    assert env.parse_post_buffer() is True
    assert env.posts == [("field", "hello world")]
    assert len(env.files) == 1
    name, upload = env.files[0]
    assert name == "upload"
    assert upload == File("a.bin", "application/octet-stream", b"\x00\x01\x02")
    assert upload.size == 3