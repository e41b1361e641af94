import time

import jwt
import pytest

from signforge.app.entitlement import bearer_token, plan_from_authorization
from signforge.app.schemas.records import PlanTier

SECRET = "entitlement-test-secret-0123456789abcdef"


def _token(claims, secret=SECRET) -> str:
    return jwt.encode(claims, secret, algorithm="HS256")


def test_pro_claim_resolves_to_pro():
    header = f"Bearer {_token({'sub': 'u1', 'plan': 'pro'})}"
    assert plan_from_authorization(header, SECRET) == PlanTier.PRO


@pytest.mark.parametrize(
    "header",
    [
        None,
        "",
        "Basic abc",
        "Bearer",
        "Bearer not-a-jwt",
    ],
)
def test_missing_or_malformed_is_free(header):
    assert plan_from_authorization(header, SECRET) == PlanTier.FREE


def test_wrong_secret_is_free():
    header = f"Bearer {_token({'plan': 'pro'}, secret='another-secret-0123456789abcdefghij')}"
    assert plan_from_authorization(header, SECRET) == PlanTier.FREE


def test_expired_token_is_free():
    header = f"Bearer {_token({'plan': 'pro', 'exp': int(time.time()) - 60})}"
    assert plan_from_authorization(header, SECRET) == PlanTier.FREE


def test_other_plans_are_free():
    header = f"Bearer {_token({'plan': 'enterprise'})}"
    assert plan_from_authorization(header, SECRET) == PlanTier.FREE


def test_bearer_scheme_is_case_insensitive():
    assert bearer_token("bearer abc") == "abc"
