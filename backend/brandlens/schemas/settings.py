"""
Notification Settings Schemas
"""

from typing import Optional

from pydantic import BaseModel, Field


class NotificationSettingsResponse(BaseModel):
    """Alert thresholds and toggles"""
    visibility_threshold: float
    email_enabled: bool
    visibility_drop_alert: bool
    competitor_overtake_alert: bool
    sentiment_shift_alert: bool
    daily_summary_enabled: bool
    weekly_report_enabled: bool

    class Config:
        from_attributes = True


class NotificationSettingsUpdate(BaseModel):
    """Partial update of alert settings"""
    visibility_threshold: Optional[float] = Field(None, ge=0, le=100)
    email_enabled: Optional[bool] = None
    visibility_drop_alert: Optional[bool] = None
    competitor_overtake_alert: Optional[bool] = None
    sentiment_shift_alert: Optional[bool] = None
    daily_summary_enabled: Optional[bool] = None
    weekly_report_enabled: Optional[bool] = None
