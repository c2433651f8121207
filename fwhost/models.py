from sqlalchemy import Column, Integer, String, Boolean, TIMESTAMP, func
from fwhost.database import Base


class VendorModel(Base):
    __tablename__ = "vendors"

    guid = Column(String(64), primary_key=True)
    name = Column(String(128), nullable=False, default="")
    contact = Column(String(255), nullable=False, default="")
    enabled = Column(Boolean, nullable=False, default=True)


class FirmwareModel(Base):
    __tablename__ = "firmware"

    id = Column(Integer, primary_key=True, index=True)
    # not a ForeignKey: rows are removed together with the vendor by fwhost.admin
    vendor_guid = Column(String(64), nullable=False, index=True)
    contact = Column(String(255), nullable=False, default="")
    addr = Column(String(64))
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    filename = Column(String(255), nullable=False)
    checksum = Column(String(40), unique=True, nullable=False)
