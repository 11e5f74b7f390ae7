import pytest
import requests

import main
from main import Settings, create_app


class FakeUpstream:
    """Stands in for requests.post and records every outbound call."""

    def __init__(self):
        self.calls = []
        self.status_code = 200
        self.content = b'{"candidates": []}'
        self.error = None

    def __call__(self, url, data=None, headers=None, timeout=None, **kwargs):
        self.calls.append({"url": url, "data": data, "headers": headers, "timeout": timeout})
        if self.error is not None:
            raise self.error
        resp = requests.Response()
        resp.status_code = self.status_code
        resp._content = self.content
        resp.headers["Content-Type"] = "text/plain"
        return resp


@pytest.fixture
def upstream(monkeypatch):
    fake = FakeUpstream()
    monkeypatch.setattr(main.requests, "post", fake)
    return fake


@pytest.fixture
def settings():
    return Settings(gemini_api_key="gem-secret", seedream_api_key="sd-secret")


@pytest.fixture
def client(settings):
    app = create_app(settings)
    app.config["TESTING"] = True
    return app.test_client()


@pytest.fixture
def bare_client():
    """Client for an app with no secrets configured."""
    app = create_app(Settings())
    app.config["TESTING"] = True
    return app.test_client()
