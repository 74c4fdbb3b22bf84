"""SQLAlchemy ORM models for borrower profiles, decisions and bank policies"""

from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, Text, UniqueConstraint
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class BorrowerProfileRecord(Base):
    """Latest committed profile; version guards concurrent updates"""

    __tablename__ = "borrower_profile"

    borrower_id = Column(Text, primary_key=True)
    version = Column(Integer, nullable=False, default=1)
    payload = Column(JSON, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class LendingDecisionRecord(Base):
    """Append-only decision ledger entry"""

    __tablename__ = "lending_decision"
    __table_args__ = (UniqueConstraint("borrower_id", "sequence", name="uq_lending_decision_borrower_sequence"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    borrower_id = Column(Text, nullable=False, index=True)
    sequence = Column(Integer, nullable=False)
    decision = Column(Text, nullable=False)
    is_manual = Column(Boolean, nullable=False, default=False)
    payload = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class PartnerBankPolicyRecord(Base):
    """Versioned policy document authored by a bank administrator"""

    __tablename__ = "partner_bank_policy"
    __table_args__ = (UniqueConstraint("bank_code", "version", name="uq_partner_bank_policy_version"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    bank_code = Column(Text, nullable=False, index=True)
    version = Column(Integer, nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    payload = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
