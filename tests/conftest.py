import json

import pytest
import requests


def make_response(status=200, body=None, reason="OK"):
    """Build a real requests.Response with the given status and body."""
    response = requests.Response()
    response.status_code = status
    response.reason = reason
    response.encoding = "utf-8"
    if body is None:
        response._content = b""
    elif isinstance(body, (bytes, str)):
        response._content = body.encode() if isinstance(body, str) else body
    else:
        response._content = json.dumps(body).encode()
    return response


class FakeSession:
    """Stands in for requests.Session; records requests instead of sending them."""

    def __init__(self, response=None, error=None):
        self.response = response if response is not None else make_response(body={})
        self.error = error
        self.calls = []
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.closed = True
        return False

    def request(self, method, url, **kwargs):
        if "files" in kwargs:
            # Capture file content while the handle is still open.
            kwargs["_file_contents"] = {
                name: spec[1].read() for name, spec in kwargs["files"].items()
            }
        self.calls.append((method, url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response


class SessionFactory:
    def __init__(self, response=None, error=None):
        self.sessions = []
        self.response = response
        self.error = error

    def __call__(self):
        session = FakeSession(self.response, self.error)
        self.sessions.append(session)
        return session

    @property
    def calls(self):
        return [call for session in self.sessions for call in session.calls]


@pytest.fixture
def factory():
    return SessionFactory()


@pytest.fixture
def client(factory):
    from imagify import ImagifyClient

    return ImagifyClient(api_key="stored-key", session_factory=factory)
