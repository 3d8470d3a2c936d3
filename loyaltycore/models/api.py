"""API request/response schemas for FastAPI endpoints."""

from typing import Any

from pydantic import BaseModel


class NonceRequest(BaseModel):
    address: str = ""


class NonceResponse(BaseModel):
    nonce: str


class VerifyRequest(BaseModel):
    address: str = ""
    nonce: str = ""


class VerifyResponse(BaseModel):
    status: str
    address: str


class TrialRunResponse(BaseModel):
    success: bool
    message: str
    emails: dict[str, Any]
    expired: dict[str, Any]
