"""Integration tests for decision orchestration against the database"""

import gc
import pytest
from concurrent.futures import ThreadPoolExecutor
from sqlalchemy.orm import Session
from lending_gateway.domain.access import actor_for_role
from lending_gateway.domain.exceptions import (
    AuthorizationError,
    BorrowerNotFoundError,
    ConcurrencyConflict,
    ConfigurationError,
    DecisionNotFoundError,
    PolicyNotFoundError,
)
from lending_gateway.domain.models import DecisionState, LoanDetails, LoanType, ProfilePatch
from lending_gateway.domain.overrides import ManualDecision
from lending_gateway.domain.policy import default_policy, default_policy_payload
from lending_gateway.infrastructure.database.models import LendingDecisionRecord, PartnerBankPolicyRecord
from lending_gateway.infrastructure.database.repositories import PolicyRepository, ProfileRepository
from lending_gateway.services.decision_service import BorrowerLocks, DecisionService

LENDER = actor_for_role("lender-7", "lender")
ANALYST = actor_for_role("analyst-1", "analyst")


def test_evaluate_appends_first_decision(service, prime_profile):
    decision = service.evaluate("b-1", bank_code="CBE", requested_amount=50_000, profile=prime_profile)

    assert decision.decision == DecisionState.APPROVE
    assert decision.bank_code == "CBE"
    assert decision.policy_version == 1
    assert service.get_current_decision("b-1") == decision
    assert len(service.get_decision_history("b-1")) == 1


def test_evaluate_unknown_borrower(service):
    with pytest.raises(BorrowerNotFoundError):
        service.evaluate("nobody")


def test_unknown_bank(service, prime_profile):
    with pytest.raises(PolicyNotFoundError):
        service.evaluate("b-1", bank_code="NOPE", profile=prime_profile)

    # The profile write was rolled back with the failed decision
    with pytest.raises(BorrowerNotFoundError):
        ProfileRepository(service.db).get_profile("b-1")


def test_invalid_stored_policy_fails_at_load(db: Session, service, prime_profile):
    payload = default_policy_payload("BAD")
    payload["lendingPolicy"]["personal"]["scoreThresholds"] = {"approve": 600, "conditional": 650, "review": 580}
    db.add(PartnerBankPolicyRecord(bank_code="BAD", version=1, active=True, payload=payload))
    db.commit()

    with pytest.raises(ConfigurationError):
        service.evaluate("b-1", bank_code="BAD", profile=prime_profile)

    assert service.get_decision_history("b-1") == []


def test_latest_active_policy_version_used(db: Session, service, prime_profile):
    repo = PolicyRepository(db)
    repo.save_policy(default_policy("CBE", version=2))
    repo.save_policy(default_policy("CBE", version=3), active=False)
    db.commit()

    decision = service.evaluate("b-1", bank_code="cbe", requested_amount=50_000, profile=prime_profile)

    assert decision.policy_version == 2


def test_recalculation_with_higher_income_approves(service, make_profile):
    """DTI 0.50 is held for review; doubling income brings it to 0.25"""
    service.evaluate("b-2", requested_amount=50_000, profile=make_profile(monthly_income=10_000, total_debt=5_000))
    assert service.get_current_decision("b-2").decision == DecisionState.REVIEW

    decision = service.recalculate("b-2", ProfilePatch(monthly_income=20_000), actor=LENDER)

    assert decision.decision == DecisionState.APPROVE
    assert decision.requested_amount == 50_000
    assert decision.loan_details.interest_rate == 9.0
    profile, version = ProfileRepository(service.db).get_profile("b-2")
    assert profile.monthly_income == 20_000
    assert version == 2


def test_recalculation_with_collateral(service, make_profile):
    service.evaluate("b-3", requested_amount=50_000, profile=make_profile(monthly_income=10_000, total_debt=5_000))

    decision = service.recalculate(
        "b-3", ProfilePatch(collateral_value=20_000, collateral_quality=0.8), actor=LENDER
    )

    assert decision.decision == DecisionState.APPROVE
    assert decision.loan_details.interest_rate == 10.0


def test_recalculation_is_idempotent(service, fair_profile):
    service.evaluate("b-4", profile=fair_profile)
    patch = ProfilePatch(collateral_value=10_000, collateral_quality=0.8)

    first = service.recalculate("b-4", patch, actor=LENDER)
    second = service.recalculate("b-4", patch, actor=LENDER)

    assert first.comparable() == second.comparable()
    assert len(service.get_decision_history("b-4")) == 3


def test_recalculation_requires_existing_decision(service, prime_profile):
    ProfileRepository(service.db).upsert_profile("b-5", prime_profile)
    service.db.commit()

    with pytest.raises(DecisionNotFoundError):
        service.recalculate("b-5", ProfilePatch(monthly_income=30_000))


def test_recalculation_requires_capability(service, prime_profile):
    service.evaluate("b-6", profile=prime_profile)

    with pytest.raises(AuthorizationError):
        service.recalculate("b-6", ProfilePatch(monthly_income=30_000), actor=ANALYST)


def test_recalculation_retries_version_conflicts(service, make_profile):
    service.evaluate("b-7", requested_amount=50_000, profile=make_profile(monthly_income=10_000, total_debt=5_000))
    save_profile = service.profiles.save_profile
    calls = []

    def conflicting_once(borrower_id, profile, expected_version):
        calls.append(expected_version)
        if len(calls) == 1:
            raise ConcurrencyConflict("concurrent update")
        return save_profile(borrower_id, profile, expected_version)

    service.profiles.save_profile = conflicting_once

    decision = service.recalculate("b-7", ProfilePatch(monthly_income=20_000), actor=LENDER)

    assert decision.decision == DecisionState.APPROVE
    assert len(calls) == 2
    assert len(service.get_decision_history("b-7")) == 2


def test_recalculation_gives_up_after_retries(db: Session, stored_policy, make_profile):
    service = DecisionService(db, max_retries=2, locks=BorrowerLocks())
    service.evaluate("b-8", profile=make_profile())

    def always_conflicting(borrower_id, profile, expected_version):
        raise ConcurrencyConflict("concurrent update")

    service.profiles.save_profile = always_conflicting

    with pytest.raises(ConcurrencyConflict):
        service.recalculate("b-8", ProfilePatch(monthly_income=30_000), actor=LENDER)

    assert len(service.get_decision_history("b-8")) == 1


def test_stale_profile_version_conflicts(service, prime_profile):
    repo = ProfileRepository(service.db)
    repo.upsert_profile("b-9", prime_profile)
    repo.save_profile("b-9", prime_profile, expected_version=1)

    with pytest.raises(ConcurrencyConflict):
        repo.save_profile("b-9", prime_profile, expected_version=1)


def test_manual_override_appends(service, delinquent_profile):
    """The automatic Reject stays in history under the manual Approve"""
    rejected = service.evaluate("b-10", profile=delinquent_profile)
    manual = ManualDecision(
        decision=DecisionState.APPROVE,
        decided_by=LENDER.actor_id,
        override_justification="Missed payments were a servicer error",
        loan_details=LoanDetails(amount=5_000, term=12, interest_rate=18.0),
    )

    approved = service.record_manual_decision("b-10", manual, LENDER)

    history = service.get_decision_history("b-10")
    assert [d.decision for d in history] == [DecisionState.REJECT, DecisionState.APPROVE]
    assert history[0] == rejected
    assert history[1] == approved
    assert service.get_current_decision("b-10").is_manual is True


def test_manual_override_needs_capability(service, delinquent_profile):
    service.evaluate("b-11", profile=delinquent_profile)
    manual = ManualDecision(decision=DecisionState.HOLD, decided_by=ANALYST.actor_id, override_justification="x")

    with pytest.raises(AuthorizationError):
        service.record_manual_decision("b-11", manual, ANALYST)


def test_manual_override_disabled_by_policy(db: Session, service, delinquent_profile):
    payload = default_policy_payload("STRICT")
    payload["allowManualOverride"] = False
    db.add(PartnerBankPolicyRecord(bank_code="STRICT", version=1, active=True, payload=payload))
    db.commit()
    service.evaluate("b-12", bank_code="STRICT", profile=delinquent_profile)
    manual = ManualDecision(decision=DecisionState.HOLD, decided_by=LENDER.actor_id, override_justification="x")

    with pytest.raises(AuthorizationError):
        service.record_manual_decision("b-12", manual, LENDER)


def test_manual_override_without_decision(service):
    manual = ManualDecision(decision=DecisionState.HOLD, decided_by=LENDER.actor_id, override_justification="x")

    with pytest.raises(DecisionNotFoundError):
        service.record_manual_decision("b-13", manual, LENDER)


def test_simulation_does_not_persist(service, prime_profile):
    service.evaluate("b-14", profile=prime_profile, requested_amount=20_000)

    simulated = service.simulate(
        borrower_id="b-14",
        loan_type=LoanType.AUTO,
        patch=ProfilePatch(monthly_income=5_000),
        requested_amount=20_000,
    )

    assert simulated.loan_type == LoanType.AUTO
    assert len(service.get_decision_history("b-14")) == 1
    profile, _ = ProfileRepository(service.db).get_profile("b-14")
    assert profile.monthly_income == 20_000


def test_history_grows_with_every_decision(service, fair_profile):
    lengths = []
    service.evaluate("b-15", profile=fair_profile)
    lengths.append(len(service.get_decision_history("b-15")))
    service.recalculate("b-15", ProfilePatch(), actor=LENDER)
    lengths.append(len(service.get_decision_history("b-15")))
    service.record_manual_decision(
        "b-15",
        ManualDecision(decision=DecisionState.HOLD, decided_by=LENDER.actor_id, override_justification="Docs"),
        LENDER,
    )
    lengths.append(len(service.get_decision_history("b-15")))

    assert lengths == [1, 2, 3]


def test_concurrent_decisions_keep_sequence_unique(service, prime_profile):
    """Calls for one borrower serialize on the borrower lock"""
    service.evaluate("b-16", profile=prime_profile, requested_amount=20_000)

    with ThreadPoolExecutor(max_workers=4) as pool:
        list(pool.map(lambda _: service.recalculate("b-16", ProfilePatch(), actor=LENDER), range(4)))

    assert len(service.get_decision_history("b-16")) == 5


def test_recalculation_retries_ledger_sequence_race(db: Session, service, make_profile):
    """Another writer takes the next sequence first; the retry appends after it"""
    service.evaluate("b-17", requested_amount=50_000, profile=make_profile(monthly_income=10_000, total_debt=5_000))
    current = service.get_current_decision("b-17")
    next_sequence = service.ledger._next_sequence
    taken = []

    def racing_next_sequence(borrower_id):
        sequence = next_sequence(borrower_id)
        if not taken:
            taken.append(sequence)
            db.add(
                LendingDecisionRecord(
                    borrower_id=borrower_id,
                    sequence=sequence,
                    decision=current.decision.value,
                    is_manual=False,
                    payload=current.to_dict(),
                )
            )
            db.commit()
        return sequence

    service.ledger._next_sequence = racing_next_sequence

    decision = service.recalculate("b-17", ProfilePatch(monthly_income=20_000), actor=LENDER)

    assert decision.decision == DecisionState.APPROVE
    assert taken == [2]
    sequences = [
        row.sequence
        for row in db.query(LendingDecisionRecord)
        .filter(LendingDecisionRecord.borrower_id == "b-17")
        .order_by(LendingDecisionRecord.id)
    ]
    assert sequences == [1, 2, 3]
    history = service.get_decision_history("b-17")
    assert [d.decision for d in history] == [DecisionState.REVIEW, DecisionState.REVIEW, DecisionState.APPROVE]


def test_duplicate_ledger_sequence_is_a_conflict(db: Session, service, prime_profile):
    decision = service.evaluate("b-18", profile=prime_profile, requested_amount=20_000)
    service.ledger._next_sequence = lambda borrower_id: 1

    with pytest.raises(ConcurrencyConflict):
        service.ledger.append("b-18", decision)


def test_borrower_locks_are_released_when_unused():
    locks = BorrowerLocks()

    for i in range(1_000):
        with locks.lock_for(f"b-{i}"):
            pass
    gc.collect()

    assert len(locks) == 0


def test_borrower_lock_shared_while_held():
    locks = BorrowerLocks()
    held = locks.lock_for("b-1")

    other = locks.lock_for("b-2")
    assert locks.lock_for("b-1") is held
    assert other is not held

    del other
    gc.collect()
    assert len(locks) == 1
