"""Decision orchestration: load inputs, run the engine, append to the ledger"""

import logging
import threading
import time
import weakref
from datetime import datetime, timezone
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from lending_gateway.config import settings
from lending_gateway.domain.access import SYSTEM_ACTOR, Actor, Capability, require_capability
from lending_gateway.domain.engine import evaluate_lending_decision
from lending_gateway.domain.exceptions import (
    AuthorizationError,
    ConcurrencyConflict,
    ConfigurationError,
    DecisionNotFoundError,
    ValidationError,
)
from lending_gateway.domain.models import BorrowerProfile, LendingDecision, LoanType, ProfilePatch
from lending_gateway.domain.overrides import ManualDecision, apply_manual_decision
from lending_gateway.domain.policy import PartnerBankPolicy
from lending_gateway.infrastructure.database.repositories import DecisionLedger, PolicyRepository, ProfileRepository
from lending_gateway.infrastructure.observability.logging import log_decision
from lending_gateway.infrastructure.observability.metrics import (
    policy_load_failures_counter,
    recalculation_conflict_counter,
    record_decision,
)

logger = logging.getLogger(__name__)


class BorrowerLocks:
    """One in-process lock per borrower, dropped once no caller holds a reference"""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()

    def lock_for(self, borrower_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(borrower_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[borrower_id] = lock
            return lock

    def __len__(self) -> int:
        return len(self._locks)


borrower_locks = BorrowerLocks()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DecisionService:
    """
    Entry points for automatic, recalculated and manual decisions.

    Every decision-producing call appends exactly one ledger record and
    commits; any error rolls the session back so nothing partial is stored.
    Only recalculation retries, and only on ConcurrencyConflict.
    """

    def __init__(
        self,
        db: Session,
        *,
        engine_version: Optional[str] = None,
        max_retries: Optional[int] = None,
        locks: Optional[BorrowerLocks] = None,
        clock: Callable[[], datetime] = utc_now,
        request_id: Optional[str] = None,
    ):
        self.db = db
        self.profiles = ProfileRepository(db)
        self.ledger = DecisionLedger(db)
        self.policies = PolicyRepository(db)
        self.engine_version = engine_version or settings.engine_version
        self.max_retries = settings.recalculation_max_retries if max_retries is None else max_retries
        self.locks = locks or borrower_locks
        self.clock = clock
        self.request_id = request_id

    def load_policy(self, bank_code: str) -> PartnerBankPolicy:
        try:
            return self.policies.load_policy(bank_code)
        except ConfigurationError:
            policy_load_failures_counter.labels(bank_code=bank_code.upper()).inc()
            logger.error("Policy rejected at load", extra={"request_id": self.request_id, "bank_code": bank_code})
            raise

    def get_policy(self, bank_code: str, actor: Actor = SYSTEM_ACTOR) -> PartnerBankPolicy:
        require_capability(actor, Capability.VIEW_CONFIG)
        return self.load_policy(bank_code)

    def _append(self, borrower_id: str, decision: LendingDecision, source: str, started: float) -> LendingDecision:
        sequence = self.ledger.append(borrower_id, decision)
        self.db.commit()
        duration = time.time() - started
        record_decision(decision.decision.value, source, duration)
        log_decision(self.request_id, borrower_id, decision.decision.value, source, sequence, duration * 1000)
        return decision

    def evaluate(
        self,
        borrower_id: str,
        bank_code: Optional[str] = None,
        loan_type: LoanType = LoanType.PERSONAL,
        requested_amount: Optional[float] = None,
        profile: Optional[BorrowerProfile] = None,
    ) -> LendingDecision:
        """First automatic decision from the committed profile, optionally storing a fresh profile first"""
        started = time.time()
        with self.locks.lock_for(borrower_id):
            try:
                if profile is not None:
                    self.profiles.upsert_profile(borrower_id, profile)
                else:
                    profile, _ = self.profiles.get_profile(borrower_id)
                policy = self.load_policy(bank_code or settings.default_bank_code)
                decision = evaluate_lending_decision(
                    profile,
                    policy,
                    loan_type,
                    requested_amount=requested_amount,
                    timestamp=self.clock(),
                    engine_version=self.engine_version,
                )
                return self._append(borrower_id, decision, "automatic", started)
            except Exception:
                self.db.rollback()
                raise

    def simulate(
        self,
        bank_code: Optional[str] = None,
        loan_type: LoanType = LoanType.PERSONAL,
        requested_amount: Optional[float] = None,
        profile: Optional[BorrowerProfile] = None,
        borrower_id: Optional[str] = None,
        patch: Optional[ProfilePatch] = None,
    ) -> LendingDecision:
        """Compute a what-if decision; nothing is persisted"""
        if profile is None:
            if borrower_id is None:
                raise ValidationError("profile", "simulation needs a profile or a borrower id")
            profile, _ = self.profiles.get_profile(borrower_id)
        if patch is not None:
            profile = patch.apply(profile)
        policy = self.load_policy(bank_code or settings.default_bank_code)
        return evaluate_lending_decision(
            profile,
            policy,
            loan_type,
            requested_amount=requested_amount,
            timestamp=self.clock(),
            engine_version=self.engine_version,
        )

    def recalculate(
        self,
        borrower_id: str,
        patch: ProfilePatch,
        actor: Actor = SYSTEM_ACTOR,
        bank_code: Optional[str] = None,
        loan_type: Optional[LoanType] = None,
        requested_amount: Optional[float] = None,
    ) -> LendingDecision:
        """
        Re-run the engine on the latest profile with `patch` applied.

        Bank, loan type and requested amount default to those of the current
        decision. Profile and decision commit together; a version conflict
        restarts from a fresh read.
        """
        require_capability(actor, Capability.RECALCULATE)
        started = time.time()
        with self.locks.lock_for(borrower_id):
            for attempt in range(self.max_retries + 1):
                try:
                    return self._recalculate_once(
                        borrower_id, patch, bank_code, loan_type, requested_amount, started
                    )
                except ConcurrencyConflict:
                    self.db.rollback()
                    recalculation_conflict_counter.inc()
                    logger.warning(
                        "Recalculation conflict",
                        extra={"request_id": self.request_id, "borrower_id": borrower_id, "attempt": attempt + 1},
                    )
                    if attempt == self.max_retries:
                        raise
                except Exception:
                    self.db.rollback()
                    raise

    def _recalculate_once(
        self,
        borrower_id: str,
        patch: ProfilePatch,
        bank_code: Optional[str],
        loan_type: Optional[LoanType],
        requested_amount: Optional[float],
        started: float,
    ) -> LendingDecision:
        current = self.ledger.latest(borrower_id)
        if current is None:
            raise DecisionNotFoundError(f"Borrower {borrower_id} has no decision to recalculate")
        profile, version = self.profiles.get_profile(borrower_id)
        updated = patch.apply(profile)
        policy = self.load_policy(bank_code or current.bank_code)

        decision = evaluate_lending_decision(
            updated,
            policy,
            loan_type or current.loan_type,
            requested_amount=current.requested_amount if requested_amount is None else requested_amount,
            timestamp=self.clock(),
            engine_version=self.engine_version,
        )
        if not patch.is_empty():
            self.profiles.save_profile(borrower_id, updated, version)
        return self._append(borrower_id, decision, "recalculation", started)

    def record_manual_decision(self, borrower_id: str, manual: ManualDecision, actor: Actor) -> LendingDecision:
        """Append a lender's decision on top of the current one"""
        require_capability(actor, Capability.OVERRIDE_DECISION)
        started = time.time()
        with self.locks.lock_for(borrower_id):
            try:
                current = self.ledger.latest(borrower_id)
                if current is None:
                    raise DecisionNotFoundError(f"Borrower {borrower_id} has no decision to override")
                policy = self.load_policy(current.bank_code)
                if not policy.allow_manual_override:
                    raise AuthorizationError(f"Bank {policy.bank_code} does not allow manual overrides")
                decision = apply_manual_decision(
                    current,
                    manual,
                    timestamp=self.clock(),
                    max_rate=policy.interest_rate_policy.max_rate,
                )
                return self._append(borrower_id, decision, "manual", started)
            except Exception:
                self.db.rollback()
                raise

    def get_current_decision(self, borrower_id: str, actor: Actor = SYSTEM_ACTOR) -> Optional[LendingDecision]:
        require_capability(actor, Capability.VIEW_DECISIONS)
        return self.ledger.latest(borrower_id)

    def get_decision_history(self, borrower_id: str, actor: Actor = SYSTEM_ACTOR) -> List[LendingDecision]:
        require_capability(actor, Capability.VIEW_DECISIONS)
        return self.ledger.history(borrower_id)
