import pytest

from fastcgikit.environment import Environment, File
from fastcgikit.http import RequestMethod


def _length(size):
    if size < 128:
        return bytes([size])
    return (size | 0x80000000).to_bytes(4, "big")


def params(*pairs):
    out = b""
    for name, value in pairs:
        out += _length(len(name)) + _length(len(value)) + name + value
    return out


def make_env(*pairs):
    env = Environment()
    env.fill(params(*pairs))
    return env


def test_text_fields_decoded():
    env = make_env(
        (b"HTTP_HOST", b"www.example.com"),
        (b"HTTP_USER_AGENT", "agent ü".encode("utf-8")),
        (b"SCRIPT_NAME", b"/app"),
        (b"REQUEST_URI", b"/app/x?y=1"),
        (b"DOCUMENT_ROOT", b"/var/www"),
    )
    assert env.host == "www.example.com"
    assert env.user_agent == "agent ü"
    assert env.script_name == "/app"
    assert env.request_uri == "/app/x?y=1"
    assert env.root == "/var/www"


def test_numeric_fields():
    env = make_env(
        (b"SERVER_PORT", b"80"),
        (b"REMOTE_PORT", b"5432"),
        (b"CONTENT_LENGTH", b"1234"),
        (b"HTTP_KEEP_ALIVE", b"300"),
        (b"HTTP_IF_NONE_MATCH", b"42"),
    )
    assert env.server_port == 80
    assert env.remote_port == 5432
    assert env.content_length == 1234
    assert env.keep_alive == 300
    assert env.etag == 42


@pytest.mark.parametrize(
    "label, method",
    [
        (b"GET", RequestMethod.GET),
        (b"POST", RequestMethod.POST),
        (b"DELETE", RequestMethod.DELETE),
        (b"OPTIONS", RequestMethod.OPTIONS),
        (b"get", RequestMethod.ERROR),
        (b"FETCH", RequestMethod.ERROR),
    ],
)
def test_request_method(label, method):
    assert make_env((b"REQUEST_METHOD", label)).request_method is method


def test_path_info_segments_unescaped():
    env = make_env((b"PATH_INFO", b"/a%20b//c+d/%E4%B8%89/"))
    assert env.path_info == ["a b", "c d", "三"]


def test_query_string_and_cookies():
    env = make_env(
        (b"QUERY_STRING", b"b=2&a=1&b=3"),
        (b"HTTP_COOKIE", b"session=abc; theme=dark"),
    )
    assert env.gets == [("a", "1"), ("b", "2"), ("b", "3")]
    assert env.cookies == [("session", "abc"), ("theme", "dark")]


def test_content_type_and_boundary():
    env = make_env((b"CONTENT_TYPE", b"multipart/form-data; boundary=XyZ"))
    assert env.content_type == "multipart/form-data"
    assert env.boundary == b"XyZ"


def test_content_type_without_parameters():
    env = make_env((b"CONTENT_TYPE", b"text/plain"))
    assert env.content_type == "text/plain"
    assert env.boundary == b""


def test_accept_languages():
    env = make_env((b"HTTP_ACCEPT_LANGUAGE", b"en-US, fr;q=0.8 ,de"))
    assert env.accept_languages == ["en_US", "fr", "de"]


def test_accept_languages_trailing_comma_dropped():
    env = make_env((b"HTTP_ACCEPT_LANGUAGE", b"en,"))
    assert env.accept_languages == ["en"]


def test_if_modified_since():
    env = make_env((b"HTTP_IF_MODIFIED_SINCE", b"Sun, 06 Nov 1994 08:49:37 GMT"))
    assert env.if_modified_since == 784111777


def test_unknown_params_go_to_others():
    env = make_env((b"CUSTOM_THING", b"value"), (b"HTTP_HOST", b"h"))
    assert env.others == {"CUSTOM_THING": "value"}
    assert env.host == "h"


def test_long_value_uses_four_byte_length():
    long_value = b"x" * 300
    env = make_env((b"HTTP_REFERER", long_value))
    assert env.referer == "x" * 300


def test_truncated_data_stops_parsing():
    data = params((b"HTTP_HOST", b"h"), (b"SCRIPT_NAME", b"/app"))
    env = Environment()
    env.fill(data[:-2])
    assert env.host == "h"
    assert env.script_name == ""


def test_parse_post_buffer_empty_is_true():
    env = make_env((b"CONTENT_TYPE", b"text/plain"))
    assert env.parse_post_buffer() is True
    assert env.posts == []


def test_parse_post_buffer_unknown_type_is_false():
    env = make_env((b"CONTENT_TYPE", b"text/plain"))
    env.fill_post_buffer(b"a=1")
    assert env.parse_post_buffer() is False
    assert env.posts == []


def test_url_encoded_posts():
    env = make_env((b"CONTENT_TYPE", b"application/x-www-form-urlencoded"))
    env.fill_post_buffer(b"name=J%C3%BCrgen&")
    env.fill_post_buffer(b"age=30")
    assert env.parse_post_buffer() is True
    assert env.posts == [("age", "30"), ("name", "Jürgen")]


MULTIPART_BODY = (
    b"--XyZ\r\n"
    b'Content-Disposition: form-data; name="field"\r\n'
    b"\r\n"
    b"hello\r\n"
    b"--XyZ\r\n"
    b'Content-Disposition: form-data; name="upload"; filename="a.txt"\r\n'
    b"Content-Type: text/plain\r\n"
    b"\r\n"
    b"file data\r\n"
    b"--XyZ--\r\n"
)


def test_multipart_posts_and_files():
    env = make_env((b"CONTENT_TYPE", b"multipart/form-data; boundary=XyZ"))
    env.fill_post_buffer(MULTIPART_BODY)
    assert env.parse_post_buffer() is True
    assert env.posts == [("field", "hello")]
    assert len(env.files) == 1
    name, upload = env.files[0]
    assert name == "upload"
    assert upload == File(filename="a.txt", content_type="text/plain", data=b"file data")
    assert upload.size == len(b"file data")


def test_multipart_repeated_names_keep_order():
    part = (
        b"--B\r\n"
        b'Content-Disposition: form-data; name="k"\r\n\r\n'
        b"%s\r\n"
    )
    body = part % b"one" + part % b"two" + b"--B--\r\n"
    env = make_env((b"CONTENT_TYPE", b"multipart/form-data; boundary=B"))
    env.fill_post_buffer(body)
    env.parse_posts_multipart()
    assert env.posts == [("k", "one"), ("k", "two")]
    assert env.files == []


def test_multipart_binary_file_kept_raw():
    payload = bytes(range(256))
    body = (
        b"--XyZ\r\n"
        b'Content-Disposition: form-data; name="bin"\r\n'
        b"Content-Type: application/octet-stream\r\n\r\n"
        + payload
        + b"\r\n--XyZ--\r\n"
    )
    env = make_env((b"CONTENT_TYPE", b"multipart/form-data; boundary=XyZ"))
    env.fill_post_buffer(body)
    env.parse_posts_multipart()
    name, upload = env.files[0]
    assert name == "bin"
    assert upload.data == payload
    assert upload.filename == ""
    assert upload.content_type == "application/octet-stream"