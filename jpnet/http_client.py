"""A small HTTP client with sticky request headers and parsed response headers."""

from __future__ import annotations

import re

import requests

CONNECT_TIMEOUT = 10
OPERATION_TIMEOUT = 60

_LEADING_INT = re.compile(r"\s*[+-]?\d+")
_HTTP_VERSIONS = {9: "0.9", 10: "1.0", 11: "1.1", 20: "2", 30: "3"}


class HttpError(Exception):
    """The request could not be completed."""


def _leading_int(text: str) -> int:
    match = _LEADING_INT.match(text)
    return int(match.group()) if match else 0


class HttpClient:
    """Performs GET and POST requests.

    Request fields stay in place across requests until
    :meth:`reset_request_field`; adding a field that is already present keeps
    the old value. Response header fields are recorded only for 2xx replies.
    """

    def __init__(self, proxy: str | None = None) -> None:
        self.proxy = proxy
        self.status_code = 0
        self.response_fields: dict[str, str] = {}
        self._request_fields: dict[str, str] = {}

    @property
    def request_fields(self) -> dict[str, str]:
        return dict(sorted(self._request_fields.items()))

    def add_request_field(self, name: str, value: str | int) -> None:
        self._request_fields.setdefault(name, str(value))

    def reset_request_field(self) -> None:
        self._request_fields.clear()

    def parse_header_line(self, line: str) -> None:
        """Feed one raw response header line, status line included."""
        if line.startswith("HTTP/"):
            rest = line[5:]
            space = rest.find(" ")
            if space < 0:
                return
            code = rest[space:].lstrip(" ")
            if len(code) > 3:
                self.status_code = _leading_int(code[:3])
            return

        if not 200 <= self.status_code < 300:
            return
        name, sep, value = line.partition(":")
        if not sep:
            return
        value = value.lstrip(" ")
        if not value:
            return
        self.response_fields.setdefault(name, value.rstrip("\r\n"))

    def get(self, url: str) -> str:
        """GET ``url`` and return the response text."""
        self._clear_last_response()
        return self._perform("GET", url, None)

    def post(self, url: str, data: str) -> str:
        """POST ``data`` to ``url`` and return the response text."""
        return self._perform("POST", url, data)

    def _clear_last_response(self) -> None:
        self.response_fields.clear()
        self.status_code = 0

    def _perform(self, method: str, url: str, data: str | None) -> str:
        headers = self.request_fields
        if method == "POST" and not any(k.lower() == "content-type" for k in headers):
            headers = {"Content-Type": "application/x-www-form-urlencoded", **headers}
        proxies = {"http": self.proxy, "https": self.proxy} if self.proxy else None
        try:
            response = requests.request(
                method,
                url,
                data=data,
                headers=headers,
                timeout=(CONNECT_TIMEOUT, OPERATION_TIMEOUT),
                allow_redirects=True,
                proxies=proxies,
            )
        except requests.RequestException as exc:
            self.status_code = 0
            raise HttpError(str(exc)) from exc

        for reply in [*response.history, response]:
            self._feed_headers(reply)
        self.status_code = response.status_code
        return response.text

    def _feed_headers(self, reply: requests.Response) -> None:
        raw_version = getattr(reply.raw, "version", 11)
        version = _HTTP_VERSIONS.get(raw_version, "1.1")
        self.parse_header_line(f"HTTP/{version} {reply.status_code} {reply.reason or ''}\r\n")
        for name, value in reply.headers.items():
            self.parse_header_line(f"{name}: {value}\r\n")
        self.parse_header_line("\r\n")