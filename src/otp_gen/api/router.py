"""OTP API router — issues and verifies one-time passwords over HTTP.

Endpoints
---------
POST /otp/v1/generate   → issue an OTP for a key
POST /otp/v1/verify     → validate (and consume) an OTP
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from otp_gen.errors import (
    ExpiryScheduleError,
    OTPAlreadyExistsError,
    StoreNotRunningError,
)
from otp_gen.store.otp_store import OTPStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/otp/v1", tags=["otp"])


def get_otp_store(request: Request) -> OTPStore:
    """Return the store the application lifespan attached to ``app.state``."""
    return request.app.state.otp_store


# ── Response / request models ────────────────────────────

class OTPGenerateRequest(BaseModel):
    key: str


class OTPGenerateResponse(BaseModel):
    key: str
    otp: str
    expires_in_ms: int


class OTPVerifyRequest(BaseModel):
    key: str
    otp: str


class OTPVerifyResponse(BaseModel):
    valid: bool


# ── Endpoints ────────────────────────────────────────────

@router.post("/generate", response_model=OTPGenerateResponse, status_code=201)
async def generate_otp(
    body: OTPGenerateRequest, store: OTPStore = Depends(get_otp_store)
):
    """Generate an OTP for the given key.

    In a real system the code would be delivered out of band (email/SMS);
    here it is returned to the caller.
    """
    try:
        code = store.generate(body.key)
    except OTPAlreadyExistsError:
        raise HTTPException(
            status_code=409, detail="An OTP is already outstanding for this key"
        )
    except (ExpiryScheduleError, StoreNotRunningError) as exc:
        logger.error("OTP generation failed for %s: %s", body.key, exc)
        raise HTTPException(status_code=503, detail="OTP service unavailable")

    logger.info("OTP issued for %s", body.key)
    return OTPGenerateResponse(key=body.key, otp=code, expires_in_ms=store.expiry_ms)


@router.post("/verify", response_model=OTPVerifyResponse)
async def verify_otp(body: OTPVerifyRequest, store: OTPStore = Depends(get_otp_store)):
    """Validate an OTP for the given key."""
    try:
        is_valid = store.verify(body.key, body.otp)
    except StoreNotRunningError:
        raise HTTPException(status_code=503, detail="OTP service unavailable")

    if is_valid:
        logger.info("OTP verified for %s", body.key)
    else:
        logger.info("OTP verification failed for %s", body.key)
    return OTPVerifyResponse(valid=is_valid)
