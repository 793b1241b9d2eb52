import pytest
import responses

from jpnet.http_client import HttpClient, HttpError

URL = "http://localhost/api"


def test_parse_status_and_fields():
    client = HttpClient()
    client.parse_header_line("HTTP/1.1 200 OK\r\n")
    client.parse_header_line("Content-Type: text/plain\r\n")
    client.parse_header_line("\r\n")
    assert client.status_code == 200
    assert client.response_fields == {"Content-Type": "text/plain"}


def test_fields_ignored_for_non_2xx():
    client = HttpClient()
    client.parse_header_line("HTTP/1.1 302 Found\r\n")
    client.parse_header_line("Location: /elsewhere\r\n")
    assert client.status_code == 302
    assert client.response_fields == {}


def test_first_field_value_is_kept():
    client = HttpClient()
    client.parse_header_line("HTTP/1.1 204 No Content\r\n")
    client.parse_header_line("X-Seq: one\r\n")
    client.parse_header_line("X-Seq: two\r\n")
    assert client.response_fields["X-Seq"] == "one"


def test_add_request_field_keeps_first_and_converts_int():
    client = HttpClient()
    client.add_request_field("X-Count", 5)
    client.add_request_field("X-Count", 9)
    client.add_request_field("X-Client", "demo")
    assert client.request_fields == {"X-Client": "demo", "X-Count": "5"}
    client.reset_request_field()
    assert client.request_fields == {}


def test_get_returns_body_and_headers():
    client = HttpClient()
    client.add_request_field("X-Client", "demo")
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, URL, body="hello", headers={"X-Reply": "yes"})
        body = client.get(URL)
        sent = rsps.calls[0].request.headers
    assert body == "hello"
    assert client.status_code == 200
    assert client.response_fields["X-Reply"] == "yes"
    assert sent["X-Client"] == "demo"


def test_get_clears_previous_fields():
    client = HttpClient()
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, URL, body="a", headers={"X-First": "1"})
        rsps.add(responses.GET, URL, body="b", headers={"X-Second": "2"})
        client.get(URL)
        client.get(URL)
    assert "X-First" not in client.response_fields
    assert client.response_fields["X-Second"] == "2"


def test_post_sends_body_and_keeps_fields():
    client = HttpClient()
    client.response_fields["X-Old"] = "kept"
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, URL, body="done")
        body = client.post(URL, "a=1")
        request = rsps.calls[0].request
    assert body == "done"
    assert request.body == "a=1"
    assert request.headers["Content-Type"] == "application/x-www-form-urlencoded"
    assert client.response_fields["X-Old"] == "kept"


def test_error_status_does_not_raise():
    client = HttpClient()
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, URL, status=404, body="missing", headers={"X-A": "b"})
        body = client.get(URL)
    assert body == "missing"
    assert client.status_code == 404
    assert client.response_fields == {}


def test_connection_failure_raises_http_error():
    client = HttpClient()
    with responses.RequestsMock(assert_all_requests_are_fired=False):
        with pytest.raises(HttpError):
            client.get(URL)
    assert client.status_code == 0