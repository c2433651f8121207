"""Vendor token checks.

A request looks its vendor up once with :func:`lookup_vendor` and asks the
returned :class:`VendorView` all the questions it needs. The module-level
predicates do their own lookup each time and are kept for callers that only
need a single answer.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fwhost.errors import DatabaseError
from fwhost.models import VendorModel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VendorView:
    guid: str
    name: str
    contact: str
    enabled: bool
    found: bool

    @property
    def exists(self) -> bool:
        return self.found

    @property
    def is_active(self) -> bool:
        return self.found and self.enabled

    def is_master(self, signing_contact: str) -> bool:
        return self.found and self.contact == signing_contact


def _missing(guid: str) -> VendorView:
    return VendorView(guid=guid, name="", contact="", enabled=False, found=False)


async def lookup_vendor(session: AsyncSession, guid: Optional[str]) -> VendorView:
    if not guid:
        return _missing("")
    try:
        res = await session.execute(
            select(VendorModel).where(VendorModel.guid == guid)
        )
        row = res.scalar_one_or_none()
    except SQLAlchemyError as e:
        logger.exception("vendor lookup failed")
        raise DatabaseError("vendor lookup failed") from e
    if row is None:
        return _missing(guid)
    return VendorView(
        guid=row.guid,
        name=row.name,
        contact=row.contact,
        enabled=bool(row.enabled),
        found=True,
    )


async def exists(session: AsyncSession, guid: Optional[str]) -> bool:
    return (await lookup_vendor(session, guid)).exists


async def is_active(session: AsyncSession, guid: Optional[str]) -> bool:
    return (await lookup_vendor(session, guid)).is_active


async def is_master(
    session: AsyncSession, guid: Optional[str], signing_contact: str
) -> bool:
    return (await lookup_vendor(session, guid)).is_master(signing_contact)
