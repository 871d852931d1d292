from pydantic import BaseModel, Field


class DiypProgram(BaseModel):
    """Single program in DIYP format"""
    start: str = Field(..., description="Start time (HH:MM)")
    end: str = Field(..., description="End time (HH:MM)")
    title: str


class DiypEPGResponse(BaseModel):
    """Single-day guide of one channel, DIYP format"""
    channel_name: str
    date: str = Field(..., description="Listing date (YYYY-MM-DD)")
    epg_data: list[DiypProgram] = Field(default_factory=list)


class RefreshResponse(BaseModel):
    """Result of a manual refresh"""
    status: str = Field(..., description="'success', 'skipped' or 'failed'")
    message: str | None = None
    count: int | None = Field(None, description="Channels in the resulting snapshot")


class HealthResponse(BaseModel):
    status: str
    scheduler_running: bool
    channels: int
    guide_channels: int
    channels_refreshed_at: str | None = None
    guide_refreshed_at: str | None = None
