"""
E2E tests walking borrower personas through the HTTP surface.

Borrower personas:
- salaried prime: strong file, approved at the best rate
- new customer: strong file but held for manual sign-off
- recent defaulter: hard reject on missed payments
- fair file with collateral: review, then recalculated after pledging collateral
- retired borrower: employment check holds the risk tier at Moderate
- heavy card user: approved with a high-utilization flag
- recession bank: same prime borrower under recession policy
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session
from lending_gateway.domain.policy import default_policy_payload, parse_policy
from lending_gateway.infrastructure.database.repositories import PolicyRepository

LENDER_HEADERS = {"X-Actor-Id": "lender-7", "X-Actor-Role": "lender"}


def decide(client: TestClient, borrower_id: str, profile: dict, **extra) -> dict:
    response = client.post("/v1/decisions", json={"borrower_id": borrower_id, "profile": profile, **extra})
    assert response.status_code == 200
    return response.json()


@pytest.mark.e2e
def test_salaried_prime_approved(client: TestClient, prime_profile):
    """
    Salaried prime borrower
    Expected: Approve at 12.0 - 2.0 - 1.0 = 9.0% over 60 months
    """
    data = decide(client, "prime", prime_profile.to_dict(), requested_amount=50000)

    assert data["decision"] == "Approve"
    assert data["classification"] == "EXCELLENT"
    assert data["risk_tier"] == "Low"
    assert data["loan_details"] == {
        "amount": 50000,
        "term": 60,
        "interest_rate": 9.0,
        "monthly_payment": pytest.approx(1037.92, abs=0.01),
    }


@pytest.mark.e2e
def test_new_customer_held_for_sign_off(client: TestClient, make_profile):
    """
    Strong file, first relationship with the bank
    Expected: Review flagged for manual sign-off
    """
    data = decide(client, "newcomer", make_profile(is_existing_customer=False).to_dict(), requested_amount=20000)

    assert data["decision"] == "Review"
    assert data["flag_for_review"] is True
    assert "NEW_CUSTOMER" in data["risk_flags"]
    assert data["loan_details"] is None


@pytest.mark.e2e
def test_recent_defaulter_rejected(client: TestClient, delinquent_profile):
    """
    Four missed payments and a default in the last year
    Expected: Reject with REG-02 regardless of score
    """
    data = decide(client, "defaulter", delinquent_profile.to_dict())

    assert data["decision"] == "Reject"
    assert data["rejection_code"] == "REG-02"
    assert "RECENT_DEFAULT" in data["risk_flags"]


@pytest.mark.e2e
def test_fair_file_collateral_recalculation(client: TestClient, fair_profile):
    """
    FAIR borrower without the collateral the bank requires
    Expected: Review; after pledging collateral the collateral reason clears
    """
    first = decide(client, "fair", fair_profile.to_dict())
    assert first["decision"] == "Review"
    assert any("Collateral is required" in reason for reason in first["reasons"])

    response = client.post(
        "/v1/decisions/fair/recalculate",
        headers=LENDER_HEADERS,
        json={"collateral_value": 10000, "collateral_quality": 0.8},
    )
    second = response.json()

    assert response.status_code == 200
    assert second["decision"] == "Review"
    assert not any("Collateral is required" in reason for reason in second["reasons"])

    history = client.get("/v1/decisions/fair/history", headers=LENDER_HEADERS).json()
    assert len(history["decisions"]) == 2


@pytest.mark.e2e
def test_retired_borrower_tier_floor(client: TestClient, make_profile):
    """
    Retired borrower with a strong file
    Expected: Approve, but the risk tier is held at Moderate
    """
    data = decide(client, "retired", make_profile(employment_status="retired").to_dict(), requested_amount=20000)

    assert data["decision"] == "Approve"
    assert data["risk_tier"] == "Moderate"
    assert "EMPLOYMENT_RISK" in data["risk_flags"]


@pytest.mark.e2e
def test_heavy_card_user_flagged(client: TestClient, make_profile):
    """
    60% utilization drags the score to VERY_GOOD
    Expected: Approve at 12.0 - 1.0 - 1.0 = 10.0% with a utilization flag
    """
    data = decide(client, "cards", make_profile(credit_utilization=0.6).to_dict(), requested_amount=20000)

    assert data["decision"] == "Approve"
    assert data["classification"] == "VERY_GOOD"
    assert data["loan_details"]["interest_rate"] == 10.0
    assert "HIGH_UTILIZATION" in data["risk_flags"]


@pytest.mark.e2e
def test_recession_bank(client: TestClient, db: Session, prime_profile):
    """
    Bank running recession mode
    Expected: +2.0 rate, terms capped at 36 months
    """
    payload = default_policy_payload("RCB")
    payload["recessionMode"] = {"enabled": True, "rateIncrease": 2.0, "maxAmountReduction": 0.85, "maxTerm": 36}
    PolicyRepository(db).save_policy(parse_policy(payload))
    db.commit()

    data = decide(client, "prime-rcb", prime_profile.to_dict(), bank_code="RCB", requested_amount=20000)

    assert data["decision"] == "Approve"
    assert data["loan_details"]["interest_rate"] == 11.0
    assert data["loan_details"]["term"] == 36
    assert data["scoring_details"]["recession_mode"] is True
