from typing import List, Mapping

from jinja2 import Environment, PackageLoader, select_autoescape
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fwhost.errors import DatabaseError
from fwhost.models import FirmwareModel, VendorModel
from fwhost.outcome import (
    FAILED,
    FLAG_AUTHKEY,
    FLAG_EXISTS,
    FLAG_FILETYPE,
    FLAG_METADATA,
    FLAG_SIZECHECK,
    Outcome,
)

env = Environment(
    loader=PackageLoader("fwhost", "templates"),
    autoescape=select_autoescape(["html"]),
)

CHECK_LABELS = (
    (FLAG_AUTHKEY, "Authentication key"),
    (FLAG_SIZECHECK, "File size"),
    (FLAG_FILETYPE, "Cabinet file type"),
    (FLAG_METADATA, "Embedded metainfo"),
    (FLAG_EXISTS, "Existing entry"),
)


def render_result(params: Mapping[str, str]) -> str:
    outcome = Outcome.from_query(params)
    checks = [
        {"label": label, "passed": flag not in outcome.failed}
        for flag, label in CHECK_LABELS
    ]
    passed = outcome.passed and params.get("result") != FAILED
    return env.get_template("result.html").render(checks=checks, passed=passed)


async def load_history(session: AsyncSession) -> List[dict]:
    try:
        res = await session.execute(
            select(FirmwareModel, VendorModel.name)
            .outerjoin(VendorModel, VendorModel.guid == FirmwareModel.vendor_guid)
            .order_by(FirmwareModel.id)
        )
    except SQLAlchemyError as e:
        raise DatabaseError("failed to load firmware history") from e
    return [
        {
            "vendor": vendor_name or "",
            "contact": fw.contact,
            "addr": fw.addr or "",
            "created_at": fw.created_at,
            "filename": fw.filename,
            "checksum": fw.checksum,
        }
        for fw, vendor_name in res.all()
    ]


def render_history(rows: List[dict]) -> str:
    return env.get_template("history.html").render(rows=rows)
