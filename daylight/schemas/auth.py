"""Authentication schemas for Supabase JWT tokens."""

from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class JWTClaims(BaseModel):
    """JWT claims extracted from a Supabase access token."""

    sub: str = Field(..., description="Subject (user ID)")
    email: Optional[str] = Field(None, description="User email")
    role: str = Field(default="authenticated", description="User role")
    exp: int = Field(..., description="Expiration timestamp")
    iat: int = Field(..., description="Issued at timestamp")
    iss: str = Field(..., description="Token issuer")
    aud: Optional[str] = Field(None, description="Audience")
    user_metadata: Optional[Dict[str, Any]] = Field(None, description="User metadata")


class CurrentUser(BaseModel):
    """Authenticated user attached to a request."""

    id: UUID = Field(..., description="Supabase user ID")
    email: Optional[str] = Field(None, description="User email")
    role: str = Field(default="authenticated", description="User role")
