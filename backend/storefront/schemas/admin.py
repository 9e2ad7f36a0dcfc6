"""Admin Schemas - payment settings."""

from pydantic import BaseModel, Field


class SettingsUpdate(BaseModel):
    payment_access_token: str = Field(max_length=500)


class SettingsResponse(BaseModel):
    payment_access_token: str
    configured: bool
