"""
Pydantic schemas for login and two-factor authentication.
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class RegisterRequest(BaseModel):
    """Request body for account registration."""
    username: str = Field(..., min_length=3, description="Username")
    email: str = Field(..., min_length=3, pattern=r"^[^@\s]+@[^@\s]+$", description="E-mail address, used as label in authenticator apps")
    password: str = Field(..., min_length=6, description="Password")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "username": "hannibal",
            "email": "hannibal@example.com",
            "password": "SecurePassword123"
        }
    })


class LoginRequest(BaseModel):
    """Request body for the password step of the login."""
    username: str = Field(..., min_length=1, description="Username")
    password: str = Field(..., min_length=1, description="Password")


class TwoFactorLoginRequest(BaseModel):
    """Request body for the second login step."""
    challenge_token: Optional[str] = Field(None, description="Challenge token returned by /login")
    code: str = Field(..., min_length=6, max_length=6, description="6-digit code from the authenticator app or SMS")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "challenge_token": "eyJ0eXAiOiJKV1QiLCJhbGc...",
            "code": "123456"
        }
    })


class ResendCodeRequest(BaseModel):
    challenge_token: Optional[str] = Field(None, description="Challenge token returned by /login")


class GenerateSecretRequest(BaseModel):
    method: Literal["totp", "hotp"] = Field("totp", description="Time based (totp) or counter based (hotp) codes")


class CodeRequest(BaseModel):
    """A 6-digit code confirming an action on the second factor."""
    code: str = Field(..., min_length=6, max_length=6, description="6-digit code")


class AuthResponse(BaseModel):
    """Response from the login endpoints."""
    success: bool = Field(..., description="Whether the step was successful")
    message: Optional[str] = Field(None, description="Status message")
    data: Optional[Any] = Field(None, description="Token data or 2FA hint")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "success": True,
            "message": "Authentication successful",
            "data": {
                "access_token": "eyJ0eXAiOiJKV1QiLCJhbGc...",
                "token_type": "bearer",
                "expires_in": 43200,
                "username": "hannibal",
                "roles": ["voter"],
                "requires_two_factor": False
            }
        }
    })


class TwoFactorStatus(BaseModel):
    two_factor_enabled: bool
    has_secret: bool
    method: Optional[str] = None
    has_active_code: bool


class EnrollmentData(BaseModel):
    secret: str
    method: str
    uri: str
    totp_uri: str
    hotp_uri: str


class TwoFactorResponse(BaseModel):
    """Generic response of the 2FA management endpoints."""
    success: bool
    message: Optional[str] = None
    data: Optional[Any] = None
