import hashlib
import logging
import os
from dataclasses import dataclass
from typing import Optional

from fastapi import UploadFile
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fwhost.auth import lookup_vendor
from fwhost.config import Settings
from fwhost.errors import DatabaseError
from fwhost.models import FirmwareModel
from fwhost.outcome import (
    FLAG_AUTHKEY,
    FLAG_EXISTS,
    FLAG_FILETYPE,
    FLAG_METADATA,
    FLAG_SIZECHECK,
    Outcome,
)
from fwhost.storage import object_name

logger = logging.getLogger(__name__)

CAB_MAGIC = b"MSCF"
METAINFO_MARKER = b".metainfo.xml"
READ_CHUNK = 64 * 1024


@dataclass(frozen=True)
class Payload:
    """What the checks need to know about an uploaded body.

    ``data`` holds at most ``limit + 1`` bytes; ``size``, ``checksum`` and
    ``has_metainfo`` describe the whole body.
    """

    data: bytes
    size: int
    checksum: str
    has_metainfo: bool

    @classmethod
    def from_bytes(cls, data: bytes) -> "Payload":
        return cls(
            data=data,
            size=len(data),
            checksum=hashlib.sha1(data).hexdigest(),
            has_metainfo=METAINFO_MARKER in data,
        )


def check_payload(
    payload: Payload, min_size: int, max_size: int, outcome: Optional[Outcome] = None
) -> Outcome:
    """Run the content checks that need no database; all of them, always."""
    if outcome is None:
        outcome = Outcome()
    outcome.check(FLAG_SIZECHECK, min_size <= payload.size <= max_size)
    outcome.check(FLAG_FILETYPE, payload.data[:4] == CAB_MAGIC)
    outcome.check(FLAG_METADATA, payload.has_metainfo)
    return outcome


async def read_upload(file: UploadFile, limit: int) -> Payload:
    """Read the whole body, keeping at most ``limit + 1`` bytes of it."""
    buf = bytearray()
    h = hashlib.sha1()
    size = 0
    found = False
    # tail of the previous chunk, so the marker is found across chunk edges
    carry = b""

    while chunk := await file.read(READ_CHUNK):
        h.update(chunk)
        size += len(chunk)
        if len(buf) <= limit:
            buf.extend(chunk[: limit + 1 - len(buf)])
        if not found:
            window = carry + chunk
            found = METAINFO_MARKER in window
            carry = window[-(len(METAINFO_MARKER) - 1):]

    return Payload(bytes(buf), size, h.hexdigest(), found)


async def checksum_known(session: AsyncSession, checksum: str) -> bool:
    try:
        res = await session.execute(
            select(FirmwareModel.id).where(FirmwareModel.checksum == checksum)
        )
    except SQLAlchemyError as e:
        raise DatabaseError("firmware lookup failed") from e
    return res.first() is not None


async def accept_upload(
    session: AsyncSession,
    storage,
    settings: Settings,
    *,
    token: str,
    contact: str,
    addr: str,
    filename: str,
    payload: Payload,
) -> Outcome:
    outcome = Outcome()

    vendor = await lookup_vendor(session, token)
    outcome.check(FLAG_AUTHKEY, vendor.is_active)
    check_payload(payload, settings.MIN_UPLOAD_SIZE, settings.MAX_UPLOAD_SIZE, outcome)

    checksum = payload.checksum
    outcome.check(FLAG_EXISTS, not await checksum_known(session, checksum))

    if not outcome.passed:
        logger.info(
            "upload rejected, vendor=%s checksum=%s failed=%s",
            token, checksum, ",".join(sorted(outcome.failed)),
        )
        return outcome

    # only save if we passed all tests
    name = object_name(checksum)
    await storage.put(name, payload.data)

    session.add(
        FirmwareModel(
            vendor_guid=vendor.guid,
            contact=contact or "",
            addr=addr,
            filename=os.path.basename(filename or ""),
            checksum=checksum,
        )
    )
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        # a concurrent upload of the same bytes committed first and owns the file
        logger.warning("firmware checksum=%s inserted concurrently", checksum)
        outcome.fail(FLAG_EXISTS)
        return outcome
    except SQLAlchemyError as e:
        await session.rollback()
        logger.exception("firmware insert failed, checksum=%s", checksum)
        try:
            await storage.delete(name)
        except Exception:
            logger.warning("could not delete orphaned %s", name, exc_info=True)
        raise DatabaseError("failed to record firmware") from e

    logger.info(
        "firmware uploaded, vendor=%s checksum=%s size=%d addr=%s",
        vendor.guid, checksum, payload.size, addr,
    )
    return outcome
