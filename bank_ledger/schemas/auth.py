"""
Pydantic schemas for authentication endpoints.

These schemas define the request/response contracts for the auth API.
Pydantic validates incoming data automatically — if a required field is
missing or the wrong type, FastAPI returns a 422 error before our code
even runs.
"""

import uuid

from pydantic import BaseModel, EmailStr, Field, model_validator


class SignupRequest(BaseModel):
    """Request body for POST /auth/signup."""
    username: str = Field(min_length=3, max_length=20, pattern=r"^[a-zA-Z0-9_]+$")
    email: EmailStr                                # Validates email format
    password: str = Field(min_length=8)            # Minimum 8 characters


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""
    username: str
    password: str


class ChangePasswordRequest(BaseModel):
    """Request body for POST /auth/change-password."""
    current_password: str
    new_password: str = Field(min_length=8)
    confirm_new_password: str

    @model_validator(mode="after")
    def passwords_must_match(self):
        if self.new_password != self.confirm_new_password:
            raise ValueError("New passwords do not match")
        return self


class TokenResponse(BaseModel):
    """Response body for a successful login — contains the bearer token."""
    token: str
    token_type: str = "bearer"


class SignupResponse(BaseModel):
    """Response body for a successful signup — account info + token."""
    account_id: uuid.UUID
    username: str
    email: str
    account_number: str
    balance_cents: int
    token: str
    token_type: str = "bearer"


class MessageResponse(BaseModel):
    message: str
