"""Shared fixtures: an app on a temporary SQLite database and download dir."""

from __future__ import annotations

import hashlib
from typing import Dict

import pytest
from fastapi.testclient import TestClient

from fwhost.admin import add_vendor
from fwhost.app_server import create_app
from fwhost.config import Settings

MASTER = "0123456789abcdef-master"
VENDOR = "fedcba9876543210-vendor"
OTHER_VENDOR = "aaaabbbbccccdddd-other"

JSON = {"Accept": "application/json"}


def make_cab(size: int = 4096, tag: bytes = b"", magic: bytes = b"MSCF", metainfo: bool = True) -> bytes:
    """Build a payload that passes the content checks unless told otherwise."""
    name = b"firmware.metainfo.xml\0" if metainfo else b"firmware.inf\0"
    body = magic + b"\0" * 32 + name + tag
    return body + b"\xaa" * max(size - len(body), 0)


def sha1(data: bytes) -> str:
    return hashlib.sha1(data).hexdigest()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        SERVER_NAME="fwhost-test",
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'fwhost.db'}",
        STORAGE_BACKEND="filesystem",
        DOWNLOAD_DIR=str(tmp_path / "downloads"),
    )


def seed_vendor(client: TestClient, guid: str, name: str, contact: str) -> None:
    async def _seed():
        async with client.app.state.sessionmaker() as session:
            await add_vendor(session, guid, name, contact)

    client.portal.call(_seed)


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as test_client:
        seed_vendor(test_client, MASTER, "Master", settings.SIGNING_CONTACT)
        seed_vendor(test_client, VENDOR, "Acme Corp", "fw@acme.example")
        yield test_client


def upload(client: TestClient, data: bytes, auth: str = VENDOR, filename: str = "firmware.cab", **kwargs):
    return client.post(
        "/upload",
        data={"auth": auth, "contact": "uploader@acme.example"},
        files={"file": (filename, data, "application/vnd.ms-cab-compressed")},
        **kwargs,
    )


def upload_json(client: TestClient, data: bytes, **kwargs) -> Dict[str, bool]:
    response = upload(client, data, headers=JSON, **kwargs)
    assert response.status_code == 200, response.text
    return response.json()


def admin(client: TestClient, action: str, guid: str, auth: str = MASTER, **fields):
    form = {"action": action, "auth": auth, "guid": guid}
    form.update(fields)
    return client.post("/admin", data=form, headers=JSON)
