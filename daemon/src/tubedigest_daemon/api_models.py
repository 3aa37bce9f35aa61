"""Pydantic models for REST API requests and responses."""

import re
from typing import Optional, Dict, Any

from pydantic import BaseModel, Field, field_validator

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class SubscriberRequest(BaseModel):
    """Request model for subscribing to digest e-mails."""

    email: str = Field(..., description="Address that receives new digests")

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        """Basic e-mail validation and cleanup."""
        v = v.strip().lower()
        if not v:
            raise ValueError("Email is required")
        if not EMAIL_PATTERN.match(v):
            raise ValueError("Invalid email format")
        return v


class APIResponse(BaseModel):
    """Standard API response format."""

    success: bool = Field(..., description="Whether the operation succeeded")
    message: str = Field(..., description="Human-readable message")
    data: Optional[Dict[str, Any]] = Field(None, description="Response data if any")
