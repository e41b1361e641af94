"""
Plan-tier resolution from the caller's bearer token.

Token issuance is handled elsewhere; this module only verifies an
HS256-signed JWT and reads its ``plan`` claim. Anything short of a valid
token that says ``"pro"`` resolves to the free tier.
"""

from __future__ import annotations

import logging
from typing import Optional

import jwt

from signforge.app.schemas.records import PlanTier

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def plan_from_authorization(authorization: Optional[str], secret: str) -> PlanTier:
    """Resolve the plan tier; never raises."""
    token = bearer_token(authorization)
    if token is None:
        return PlanTier.FREE

    try:
        claims = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError as exc:
        logger.info(
            "bearer_token_rejected",
            extra={"error_type": type(exc).__name__},
        )
        return PlanTier.FREE

    if claims.get("plan") == PlanTier.PRO.value:
        return PlanTier.PRO
    return PlanTier.FREE
