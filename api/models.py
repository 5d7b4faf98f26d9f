"""
API models and schemas for the FastAPI application.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from scheduler.models import TargetStatus
from tracker.extraction import ExtractionRule
from tracker.models import StateRecord


class TargetSummary(BaseModel):
    """One tracked target with its latest known status."""
    id: str = Field(..., description="Target identifier")
    name: str = Field(..., description="Human readable name")
    locator: str = Field(..., description="Document that is fetched")
    rule_kind: str = Field(..., description="Extraction rule kind (regex or json)")
    stored_value: Optional[str] = Field(None, description="Value currently held in the state store")
    observed_at: Optional[datetime] = Field(None, description="When the stored value was observed")
    status: TargetStatus = Field(..., description="Outcome of the most recent cycle in this process")


class TargetDetail(TargetSummary):
    """Target with its full extraction rule."""
    extraction_rule: ExtractionRule = Field(..., description="How the token is extracted")
    timeout_ms: int = Field(..., description="Fetch timeout in milliseconds")
    user_agent: Optional[str] = Field(None, description="User-Agent header sent when fetching")


class TargetListResponse(BaseModel):
    """Response model for the target list."""
    targets: List[TargetSummary] = Field(..., description="Tracked targets")
    total: int = Field(..., description="Number of tracked targets")


class StateResetResponse(BaseModel):
    """Result of deleting a stored value."""
    target_id: str = Field(..., description="Target identifier")
    deleted: bool = Field(..., description="Whether a stored value existed and was removed")
    previous: Optional[StateRecord] = Field(None, description="The record that was removed")


class ErrorResponse(BaseModel):
    """Error response model."""
    error: str = Field(..., description="Error message")
    detail: Optional[str] = Field(None, description="Additional error details")
    status_code: int = Field(..., description="HTTP status code")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Current timestamp")
    version: str = Field(..., description="API version")
    target_count: int = Field(..., description="Number of tracked targets")
    state_store_status: str = Field(..., description="State store availability")
