"""Vendor provisioning: add, disable and remove vendor accounts.

Only the master vendor (the one whose contact is the signing address) may
provision. Every precondition is checked and reported, like upload checks.
Removing a vendor deletes its firmware rows and the vendor row in one
transaction; the stored files are deleted afterwards and a failure there is
only logged.
"""

import logging
from typing import List

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fwhost.auth import lookup_vendor
from fwhost.config import Settings
from fwhost.errors import DatabaseError, InvalidActionError
from fwhost.models import FirmwareModel, VendorModel
from fwhost.outcome import FLAG_AUTHKEY, FLAG_EXISTS, Outcome
from fwhost.storage import object_name

logger = logging.getLogger(__name__)

ACTIONS = ("add", "disable", "remove")


async def add_vendor(session: AsyncSession, guid: str, name: str, contact: str) -> None:
    """Insert an enabled vendor; raises ``IntegrityError`` if the guid is taken."""
    session.add(VendorModel(guid=guid, name=name, contact=contact, enabled=True))
    try:
        await session.commit()
    except SQLAlchemyError:
        await session.rollback()
        raise


async def _firmware_checksums(session: AsyncSession, guid: str) -> List[str]:
    res = await session.execute(
        select(FirmwareModel.checksum).where(FirmwareModel.vendor_guid == guid)
    )
    return list(res.scalars().all())


async def _remove_vendor(session: AsyncSession, storage, guid: str) -> None:
    try:
        checksums = await _firmware_checksums(session, guid)
        await session.execute(
            delete(FirmwareModel).where(FirmwareModel.vendor_guid == guid)
        )
        await session.execute(delete(VendorModel).where(VendorModel.guid == guid))
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.exception("remove failed for vendor=%s", guid)
        raise DatabaseError("failed to remove vendor") from e

    for checksum in checksums:
        try:
            await storage.delete(object_name(checksum))
        except Exception:
            logger.warning(
                "could not delete stored file %s of removed vendor=%s",
                object_name(checksum), guid, exc_info=True,
            )
    logger.info("removed vendor=%s with %d firmware files", guid, len(checksums))


async def apply_action(
    session: AsyncSession,
    storage,
    settings: Settings,
    *,
    action: str,
    master: str,
    guid: str,
    name: str = "",
    contact: str = "",
) -> Outcome:
    if action not in ACTIONS:
        raise InvalidActionError(action)

    outcome = Outcome()
    caller = await lookup_vendor(session, master)
    target = await lookup_vendor(session, guid)
    outcome.check(FLAG_AUTHKEY, caller.is_master(settings.SIGNING_CONTACT))
    if action == "add":
        outcome.check(FLAG_EXISTS, not target.exists)
    else:
        outcome.check(FLAG_EXISTS, target.exists)

    if not outcome.passed:
        logger.info(
            "admin %s rejected, vendor=%s failed=%s",
            action, guid, ",".join(sorted(outcome.failed)),
        )
        return outcome

    # end the read transaction so the mutation below starts fresh
    await session.rollback()

    if action == "add":
        try:
            await add_vendor(session, guid, name, contact or settings.DEFAULT_CONTACT)
        except IntegrityError:
            logger.warning("vendor=%s added concurrently", guid)
            outcome.fail(FLAG_EXISTS)
            return outcome
        except SQLAlchemyError as e:
            raise DatabaseError("failed to add vendor") from e
        logger.info("added vendor=%s name=%s", guid, name)
    elif action == "disable":
        try:
            await session.execute(
                update(VendorModel)
                .where(VendorModel.guid == guid)
                .values(enabled=False)
            )
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            raise DatabaseError("failed to disable vendor") from e
        logger.info("disabled vendor=%s", guid)
    else:
        await _remove_vendor(session, storage, guid)

    return outcome
