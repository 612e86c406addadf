"""
Pydantic schemas for API request/response validation.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


# ============================================================================
# Health Check Schemas
# ============================================================================

class HealthResponse(BaseModel):
    """Response model for health check endpoint."""
    status: str = Field(..., examples=["healthy"])
    version: str = Field(..., examples=["1.0.0"])


# ============================================================================
# Error Schemas
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response format."""
    error: str = Field(..., examples=["Not authenticated"])
    detail: Optional[str] = Field(None, examples=["Invalid input data"])


# ============================================================================
# Stats Schemas
# ============================================================================

class LoadEmailsResponse(BaseModel):
    """Result of a Tinybird backfill run."""
    pages: int = Field(..., ge=0, examples=[2], description="Full pages of 200 messages processed")


# ============================================================================
# OAuth Schemas
# ============================================================================

class OAuthURLResponse(BaseModel):
    """Response containing OAuth authorization URL."""
    auth_url: str = Field(..., examples=["https://accounts.google.com/o/oauth2/auth?..."])


class OAuthStatusResponse(BaseModel):
    """Response for OAuth connection status."""
    connected: bool = Field(..., examples=[True])
    user_email: Optional[str] = Field(None, examples=["user@gmail.com"])
    scopes: List[str] = Field(default_factory=list)
    expires_at: Optional[datetime] = None
