"""Tests for the HTTP helpers behind the Streamlit page."""

import io

import pytest
import requests

from ereader_service import streamlit_app


class FakeResponse:
    def __init__(self, status_code=200, json_data=None, headers=None, text=""):
        self.status_code = status_code
        self._json = json_data
        self.headers = headers or {}
        self.text = text

    def json(self):
        if self._json is None:
            raise ValueError("no json")
        return self._json


class FakeUpload(io.BytesIO):
    name = "b.pdf"
    type = "application/pdf"


@pytest.fixture()
def api(monkeypatch):
    monkeypatch.setattr(streamlit_app, "API_BASE", "http://api")
    calls = []

    def install(method, response):
        def fake(url, **kwargs):
            calls.append((url, kwargs))
            if isinstance(response, Exception):
                raise response
            return response

        monkeypatch.setattr(streamlit_app.requests, method, fake)
        return calls

    return install


def test_start_job_posts_form(api):
    calls = api("post", FakeResponse(202, {"id": "job-1", "status": "pending"}))

    job_id, err = streamlit_app._start_ereader_job("https://example.com", "epub", 30)

    assert (job_id, err) == ("job-1", None)
    url, kwargs = calls[0]
    assert url == "http://api/api/ereader"
    assert kwargs["data"] == {"url": "https://example.com", "format": "epub", "timeout": "30"}


def test_start_job_reports_rejection(api):
    api("post", FakeResponse(400, {"detail": {}}, text="bad url"))

    job_id, err = streamlit_app._start_ereader_job("nope", "pdf", None)

    assert job_id is None
    assert err.startswith("Submit failed: 400")


def test_start_job_reports_connection_error(api):
    api("post", requests.ConnectionError("refused"))

    job_id, err = streamlit_app._start_ereader_job("https://example.com", "pdf", None)

    assert job_id is None
    assert "Failed to connect" in err


def test_poll_redirect_means_finished(api):
    calls = api("get", FakeResponse(302, headers={"Location": "/link?fname=a.epub"}))

    data = streamlit_app._poll_job("job-1")

    assert data == {"status": "finished", "link": "/link?fname=a.epub"}
    assert calls[0][1]["allow_redirects"] is False
    assert calls[0][1]["params"] == {"wait": "false"}


def test_poll_pending_and_error(api):
    api("get", FakeResponse(200, {"id": "job-1", "status": "pending"}))
    assert streamlit_app._poll_job("job-1")["status"] == "pending"

    api("get", FakeResponse(500, {"id": "job-1", "status": "error", "error": "Process timed out after 60 seconds."}))
    data = streamlit_app._poll_job("job-1")
    assert data["status"] == "error"
    assert "timed out" in data["error"]


def test_poll_unknown_job(api):
    api("get", FakeResponse(404, {"id": "x", "status": "error", "error": "job not found"}))

    assert streamlit_app._poll_job("x") == {"status": "error", "error": "Unknown job"}


def test_upload_returns_link(api):
    calls = api("post", FakeResponse(303, headers={"Location": "/link?fname=b.pdf"}))
    upload = FakeUpload(b"data")

    link, err = streamlit_app._upload_file(upload)

    assert (link, err) == ("/link?fname=b.pdf", None)
    assert calls[0][1]["files"]["userfile"][0] == "b.pdf"
