"""Data access layer for borrower profiles, the decision ledger and bank policies"""

from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from lending_gateway.domain.exceptions import BorrowerNotFoundError, ConcurrencyConflict, PolicyNotFoundError
from lending_gateway.domain.models import BorrowerProfile, LendingDecision
from lending_gateway.domain.policy import PartnerBankPolicy, parse_policy
from lending_gateway.infrastructure.database.models import (
    BorrowerProfileRecord,
    LendingDecisionRecord,
    PartnerBankPolicyRecord,
)


class ProfileRepository:
    """Repository for borrower profiles"""

    def __init__(self, db: Session):
        self.db = db

    def get_profile(self, borrower_id: str) -> Tuple[BorrowerProfile, int]:
        """Latest committed profile and its version"""
        record = self.db.get(BorrowerProfileRecord, borrower_id)
        if record is None:
            raise BorrowerNotFoundError(f"No profile for borrower {borrower_id}")
        return BorrowerProfile.from_dict(record.payload), record.version

    def upsert_profile(self, borrower_id: str, profile: BorrowerProfile) -> int:
        """Store a profile delivered by the ingestion adapter, returning its version"""
        record = self.db.get(BorrowerProfileRecord, borrower_id)
        if record is None:
            self.db.add(BorrowerProfileRecord(borrower_id=borrower_id, version=1, payload=profile.to_dict()))
            try:
                self.db.flush()
            except IntegrityError as e:
                raise ConcurrencyConflict(f"Profile for borrower {borrower_id} was created concurrently") from e
            return 1
        return self.save_profile(borrower_id, profile, record.version)

    def save_profile(self, borrower_id: str, profile: BorrowerProfile, expected_version: int) -> int:
        """Compare-and-swap on version; raises ConcurrencyConflict if someone else committed first"""
        updated = (
            self.db.query(BorrowerProfileRecord)
            .filter(
                BorrowerProfileRecord.borrower_id == borrower_id,
                BorrowerProfileRecord.version == expected_version,
            )
            .update(
                {
                    BorrowerProfileRecord.payload: profile.to_dict(),
                    BorrowerProfileRecord.version: expected_version + 1,
                    BorrowerProfileRecord.updated_at: func.now(),
                },
                synchronize_session=False,
            )
        )
        if updated != 1:
            raise ConcurrencyConflict(f"Profile for borrower {borrower_id} changed since version {expected_version}")
        return expected_version + 1


class DecisionLedger:
    """Append-only decision history keyed by (borrower_id, sequence)"""

    def __init__(self, db: Session):
        self.db = db

    def _next_sequence(self, borrower_id: str) -> int:
        current = (
            self.db.query(func.max(LendingDecisionRecord.sequence))
            .filter(LendingDecisionRecord.borrower_id == borrower_id)
            .scalar()
        )
        return (current or 0) + 1

    def append(self, borrower_id: str, decision: LendingDecision) -> int:
        """Append a decision, returning its sequence number"""
        sequence = self._next_sequence(borrower_id)
        self.db.add(
            LendingDecisionRecord(
                borrower_id=borrower_id,
                sequence=sequence,
                decision=decision.decision.value,
                is_manual=decision.is_manual,
                payload=decision.to_dict(),
            )
        )
        try:
            self.db.flush()
        except IntegrityError as e:
            raise ConcurrencyConflict(f"Ledger for borrower {borrower_id} already has sequence {sequence}") from e
        return sequence

    def latest(self, borrower_id: str) -> Optional[LendingDecision]:
        record = (
            self.db.query(LendingDecisionRecord)
            .filter(LendingDecisionRecord.borrower_id == borrower_id)
            .order_by(LendingDecisionRecord.sequence.desc())
            .first()
        )
        return LendingDecision.from_dict(record.payload) if record else None

    def history(self, borrower_id: str) -> List[LendingDecision]:
        """All decisions in append order"""
        records = (
            self.db.query(LendingDecisionRecord)
            .filter(LendingDecisionRecord.borrower_id == borrower_id)
            .order_by(LendingDecisionRecord.sequence.asc())
            .all()
        )
        return [LendingDecision.from_dict(record.payload) for record in records]


class PolicyRepository:
    """Read access to partner bank policies"""

    def __init__(self, db: Session):
        self.db = db

    def load_policy(self, bank_code: str) -> PartnerBankPolicy:
        """Latest active version for the bank, validated"""
        record = (
            self.db.query(PartnerBankPolicyRecord)
            .filter(
                PartnerBankPolicyRecord.bank_code == bank_code.strip().upper(),
                PartnerBankPolicyRecord.active.is_(True),
            )
            .order_by(PartnerBankPolicyRecord.version.desc())
            .first()
        )
        if record is None:
            raise PolicyNotFoundError(f"No active policy for bank {bank_code}")
        return parse_policy(record.payload)

    def save_policy(self, policy: PartnerBankPolicy, active: bool = True) -> PartnerBankPolicyRecord:
        record = PartnerBankPolicyRecord(
            bank_code=policy.bank_code,
            version=policy.version,
            active=active,
            payload=policy.model_dump(mode="json", by_alias=True),
        )
        self.db.add(record)
        self.db.flush()
        return record
