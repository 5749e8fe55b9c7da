"""Pydantic schemas for request/response validation"""
from adminguard.schemas.audit import ChainVerifyResponse
from adminguard.schemas.auth import (
    BackupCodeRequest,
    LoginRequest,
    SessionUser,
    TwoFactorConfirmRequest,
    TwoFactorEnrollmentResponse,
    TwoFactorVerifyRequest,
    UserSummary,
)

__all__ = [
    "BackupCodeRequest",
    "ChainVerifyResponse",
    "LoginRequest",
    "SessionUser",
    "TwoFactorConfirmRequest",
    "TwoFactorEnrollmentResponse",
    "TwoFactorVerifyRequest",
    "UserSummary",
]
