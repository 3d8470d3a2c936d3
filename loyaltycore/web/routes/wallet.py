"""Wallet login challenge routes: issue a nonce, then redeem it."""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException

from loyaltycore.auth.challenge_store import ChallengeStore, normalize_principal
from loyaltycore.exceptions import ChallengeStoreError
from loyaltycore.models.api import NonceRequest, NonceResponse, VerifyRequest, VerifyResponse
from loyaltycore.web.dependencies import get_challenge_store

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/wallet", tags=["wallet"])

Store = Annotated[ChallengeStore, Depends(get_challenge_store)]


@router.post("/nonce")
async def issue_nonce(body: NonceRequest, store: Store) -> NonceResponse:
    """Issue a login nonce for a wallet address, replacing any outstanding one."""
    if not body.address.strip():
        raise HTTPException(status_code=400, detail="Missing or invalid address")

    try:
        nonce = await store.generate(body.address)
    except ChallengeStoreError as exc:
        logger.error("nonce_issue_failed", error=str(exc))
        raise HTTPException(status_code=500, detail="Internal server error") from exc
    return NonceResponse(nonce=nonce)


@router.post("/verify")
async def verify_nonce(body: VerifyRequest, store: Store) -> VerifyResponse:
    """Redeem a nonce. Every failure cause gets the same 401 response."""
    if not body.address.strip() or not body.nonce:
        raise HTTPException(status_code=401, detail="Invalid or expired nonce")

    if not await store.verify(body.address, body.nonce):
        raise HTTPException(status_code=401, detail="Invalid or expired nonce")

    address = normalize_principal(body.address)
    logger.info("wallet_challenge_verified", address=address)
    return VerifyResponse(status="ok", address=address)
