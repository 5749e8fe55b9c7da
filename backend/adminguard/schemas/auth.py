"""Auth request/response schemas.

Request fields are optional at the schema level so that a missing field is
answered with the endpoint's own 400 message rather than a generic 422.
"""
from typing import List, Optional

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class TwoFactorVerifyRequest(BaseModel):
    temporary_token: Optional[str] = Field(None, alias="temporaryToken")
    code: Optional[str] = None

    class Config:
        populate_by_name = True


class BackupCodeRequest(BaseModel):
    temporary_token: Optional[str] = Field(None, alias="temporaryToken")
    backup_code: Optional[str] = Field(None, alias="backupCode")

    class Config:
        populate_by_name = True


class TwoFactorConfirmRequest(BaseModel):
    code: Optional[str] = None


class UserSummary(BaseModel):
    id: str
    email: str
    role: Optional[str] = None


class SessionUser(BaseModel):
    id: str
    email: str
    role: str
    two_factor_enabled: bool = Field(..., serialization_alias="twoFactorEnabled")
    two_factor_verified: bool = Field(..., serialization_alias="twoFactorVerified")


class TwoFactorEnrollmentResponse(BaseModel):
    success: bool = True
    secret: str
    manual_entry_key: str = Field(..., serialization_alias="manualEntryKey")
    qr_code_url: str = Field(..., serialization_alias="qrCodeUrl")
    backup_codes: List[str] = Field(..., serialization_alias="backupCodes")
