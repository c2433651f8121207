"""Result and history pages, downloads, and the operational endpoints."""

from __future__ import annotations

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import make_cab, sha1, upload, upload_json
from fwhost.outcome import Outcome


def test_result_page_defaults_every_check_to_passed(client):
    page = client.get("/result").text
    assert "<h1>Success</h1>" in page
    assert "FAILED" not in page


def test_result_page_lists_failed_checks(client):
    page = client.get("/result?authkey=false&metadata=false&result=false").text
    assert "<h1>Failed</h1>" in page
    assert '<li class="fail">Authentication key: FAILED</li>' in page
    assert '<li class="fail">Embedded metainfo: FAILED</li>' in page
    assert '<li class="pass">File size: OK</li>' in page
    assert '<li class="pass">Existing entry: OK</li>' in page


def test_result_page_ignores_values_other_than_the_failure_marker(client):
    page = client.get("/result?authkey=no&filetype=true").text
    assert "<h1>Success</h1>" in page


def test_result_page_honours_overall_result_flag(client):
    assert "<h1>Failed</h1>" in client.get("/result?result=false").text


def test_following_upload_redirect_renders_checklist(client):
    page = upload(client, make_cab(magic=b"XXXX")).text
    assert '<li class="fail">Cabinet file type: FAILED</li>' in page


def test_outcome_query_round_trip():
    outcome = Outcome(["exists", "authkey"])
    assert outcome.to_query() == "authkey=false&exists=false&result=false"
    assert Outcome.from_query({"authkey": "false", "exists": "false"}).failed == {"authkey", "exists"}


def test_history_is_empty_on_fresh_install(client):
    page = client.get("/").text
    assert "<h1>Upload history</h1>" in page
    assert "<td>" not in page


def test_history_lists_uploads_in_insertion_order(client):
    first, second = make_cab(tag=b"first"), make_cab(tag=b"second")
    upload_json(client, first, filename="first.cab")
    upload_json(client, second, filename="second.cab")
    page = client.get("/history").text
    assert page.index(sha1(first)) < page.index(sha1(second))
    assert "uploader@acme.example" in page
    assert "testclient" in page


def test_history_escapes_untrusted_fields(client):
    upload_json(client, make_cab(tag=b"xss"), filename="<script>.cab")
    page = client.get("/history").text
    assert "<script>" not in page
    assert "&lt;script&gt;.cab" in page


def test_download_streams_stored_file(client):
    data = make_cab(tag=b"download")
    upload_json(client, data)
    response = client.get(f"/downloads/{sha1(data)}.cab")
    assert response.status_code == 200
    assert response.content == data
    assert response.headers["etag"] == sha1(data)


def test_download_unknown_checksum_is_404(client):
    assert client.get(f"/downloads/{'0' * 40}.cab").status_code == 404


def test_health_and_readiness(client):
    assert client.get("/healthz").json() == {"status": "ok", "app": "fwhost-test"}
    ready = client.get("/readyz")
    assert ready.status_code == 200
    assert ready.json()["db"] is True
    assert ready.json()["storage"] is True


def test_metrics_count_uploads(client):
    upload_json(client, make_cab(tag=b"metrics"))
    body = client.get("/metrics").text
    assert "fwhost_uploads_total" in body
    assert "fwhost_requests_total" in body


def test_download_database_fault_is_a_structured_error(client, monkeypatch):
    data = make_cab(tag=b"db-fault")
    upload_json(client, data)

    async def _execute(self, *args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(AsyncSession, "execute", _execute)
    response = client.get(f"/downloads/{sha1(data)}.cab")
    assert response.status_code == 500
    assert response.json() == {"code": "database_error", "detail": "firmware lookup failed"}
