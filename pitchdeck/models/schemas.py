from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

JobStatus = Literal["processing", "completed", "failed"]


class CamelModel(BaseModel):
    """Base for client-facing payloads: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# -------------------------
# Deck input
# -------------------------

class TeamMember(CamelModel):
    name: str = ""
    role: str = ""
    experience: str = ""


class ContactInfo(CamelModel):
    email: str = ""
    linkedin: str = ""
    socials: str = ""


class PitchDeckData(CamelModel):
    """Request body for POST /api/pitch-decks: everything the content generator needs to write the deck.
    Why available: Mirrors the multi-step form of the client (project, market, solution, funding, team, images, theme)."""

    # General project information
    project_name: str = ""
    big_idea: str = ""

    # Problem & market context
    problem: str = ""
    target_audience: str = ""
    existing_solutions: str = ""

    # Solution & competitive advantage
    solution: str = ""
    technology: str = ""
    differentiators: str = ""
    development_plan: str = ""
    market_size: str = ""

    # Fundraising & investment details
    funding_amount: str = ""
    funding_use: str = ""
    valuation: str = ""
    investment_structure: str = ""

    # Market opportunity
    tam: str = ""
    sam: str = ""
    som: str = ""
    target_niche: str = ""
    market_trends: str = ""
    industry: str = ""

    # Business model, traction
    revenue_model: str = ""
    scaling_plan: str = ""
    gtm_strategy: str = ""
    achievements: str = ""
    next_milestones: str = ""

    # Team & experience
    why_you: str = ""
    team_members: List[TeamMember] = Field(default_factory=list)
    team_qualification: str = ""
    contact_info: ContactInfo = Field(default_factory=ContactInfo)
    key_takeaways: str = ""

    # Images (remote URL, /files/... reference or relative path)
    company_logo: str = ""
    team_photo: str = ""
    diagram: str = ""

    # Theme
    theme: str = ""
    background_color: str = ""
    text_color: str = ""


# -------------------------
# Job records and progress
# -------------------------

class PitchDeckInfo(BaseModel):
    """One persisted job record (snake_case, same shape as the record store's columns)."""

    id: str
    user_id: str
    name: str = ""
    pdf_url: str = ""
    html_url: str = ""
    is_public: bool = False
    status: JobStatus = "processing"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("name", "pdf_url", "html_url", mode="before")
    @classmethod
    def none_as_empty(cls, v):
        """Rows written before the artifacts existed hold NULL urls."""
        return "" if v is None else v


class ProgressUpdate(CamelModel):
    """A single progress event pushed to subscribers of GET /api/progress/{deckId}."""

    status: JobStatus
    current_step: int = Field(0, ge=0)
    message: str = ""
    download_url: Optional[str] = None
    view_url: Optional[str] = None

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


# -------------------------
# API responses / requests
# -------------------------

class CreateDeckResponse(CamelModel):
    message: str = "Pitch deck generation started"
    deck_id: str


class VisibilityRequest(CamelModel):
    is_public: bool


class MessageResponse(BaseModel):
    message: str


class DeckListResponse(BaseModel):
    decks: List[PitchDeckInfo] = Field(default_factory=list)


class UploadImageResponse(BaseModel):
    url: str
    filename: Optional[str] = None


class ThemesResponse(BaseModel):
    themes: List[str]


class LimitsResponse(BaseModel):
    """Response for GET /limits: upload size, job duration and rate limit. Why available: Lets clients validate before uploading or creating a deck."""

    max_image_kb: int = Field(..., description="Max image upload size in KB")
    job_timeout_seconds: float = Field(..., description="Maximum duration of one generation job")
    rate_limit_requests: int = Field(..., description="Rate limit requests per window")
    rate_limit_window_seconds: int = Field(..., description="Rate limit window in seconds")
    themes: List[str] = Field(default_factory=list)
