"""
Payment webhook response schema.
"""

from typing import Optional

from pydantic import ConfigDict, Field

from .base import StrictModel


class WebhookResponse(StrictModel):
    """Response for webhook processing."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    status: str = Field(..., description="Processing status (processed, ignored)")
    event_type: str = Field(..., description="Payment provider event type")
    booking_id: Optional[str] = None
    message: Optional[str] = Field(None, description="Additional information")
