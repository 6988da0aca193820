"""Employee and device-user mapping models. Both tables are provisioned elsewhere and only read here."""

import uuid

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from timeclock.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class Employee(Base):
    __tablename__ = "employee_profiles"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=True)  # linked account id
    full_name = Column(String(150), nullable=False)
    cpf = Column(String(14), nullable=True, index=True)
    created_at = Column(DateTime, server_default=func.now())

    device_mappings = relationship("DeviceUserMapping", back_populates="employee")


class DeviceUserMapping(Base):
    __tablename__ = "controlid_user_mappings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    employee_id = Column(String(36), ForeignKey("employee_profiles.id"), nullable=False)
    controlid_user_id = Column(Integer, nullable=False, index=True)
    cpf = Column(String(14), nullable=True)
    device_id = Column(String(64), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    employee = relationship("Employee", back_populates="device_mappings")
