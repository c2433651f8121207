"""Vendor token predicates against the vendors table."""

from __future__ import annotations

import asyncio

import pytest

from conftest import MASTER, VENDOR, admin
from fwhost import auth


def _predicates(client, guid):
    signing = client.app.state.settings.SIGNING_CONTACT

    async def _check():
        async with client.app.state.sessionmaker() as session:
            return (
                await auth.exists(session, guid),
                await auth.is_active(session, guid),
                await auth.is_master(session, guid, signing),
            )

    return client.portal.call(_check)


@pytest.mark.parametrize(
    "guid, expected",
    [
        (MASTER, (True, True, True)),
        (VENDOR, (True, True, False)),
        ("unknown", (False, False, False)),
        ("", (False, False, False)),
        (None, (False, False, False)),
    ],
)
def test_predicates(client, guid, expected):
    assert _predicates(client, guid) == expected


def test_disabled_vendor_exists_but_is_not_active(client):
    admin(client, "disable", VENDOR)
    assert _predicates(client, VENDOR) == (True, False, False)


def test_disabled_master_keeps_master_identity(client):
    admin(client, "disable", MASTER)
    assert _predicates(client, MASTER) == (True, False, True)


def test_empty_token_does_not_query():
    class _NoSession:
        async def execute(self, *args, **kwargs):
            raise AssertionError("no query expected for an empty token")

    view = asyncio.run(auth.lookup_vendor(_NoSession(), ""))
    assert not view.exists


def test_vendor_view_predicates():
    view = auth.VendorView(guid="g", name="n", contact="sign@fwupd.org", enabled=False, found=True)
    assert view.exists
    assert not view.is_active
    assert view.is_master("sign@fwupd.org")
    assert not view.is_master("other@example.com")
