"""Profile-related Pydantic schemas."""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

USERNAME_PATTERN = r"^[a-zA-Z0-9_]+$"
INSTAGRAM_PATTERN = r"^@?[a-zA-Z0-9_.]*$"


def _check_entries(values: list[str] | None, max_entries: int, max_length: int, label: str) -> list[str] | None:
    if values is None:
        return None
    cleaned = [value.strip() for value in values if value and value.strip()]
    if len(cleaned) > max_entries:
        raise ValueError(f"Maximum {max_entries} {label} allowed")
    for value in cleaned:
        if len(value) > max_length:
            raise ValueError(f"Each of {label} must be at most {max_length} characters")
    return cleaned


class ProfileUpdate(BaseModel):
    """Partial update of the caller's own profile."""

    name: str | None = Field(None, min_length=2, max_length=100)
    username: str | None = Field(None, min_length=3, max_length=30, pattern=USERNAME_PATTERN)
    bio: str | None = Field(None, max_length=500)
    date_of_birth: date | None = None
    location: str | None = Field(None, max_length=100)
    instagram: str | None = Field(None, max_length=30, pattern=INSTAGRAM_PATTERN)
    languages: list[str] | None = None
    countries_traveled: list[str] | None = None
    interests: list[str] | None = None

    @field_validator("languages")
    @classmethod
    def _check_languages(cls, value: list[str] | None) -> list[str] | None:
        return _check_entries(value, 20, 50, "languages")

    @field_validator("countries_traveled")
    @classmethod
    def _check_countries(cls, value: list[str] | None) -> list[str] | None:
        return _check_entries(value, 200, 100, "countries")

    @field_validator("interests")
    @classmethod
    def _check_interests(cls, value: list[str] | None) -> list[str] | None:
        return _check_entries(value, 20, 50, "interests")


class OnboardingRequest(BaseModel):
    """First-run details; name and date of birth complete onboarding."""

    name: str = Field(..., min_length=2, max_length=100)
    date_of_birth: date
    interests: list[str] = Field(default_factory=list)

    @field_validator("interests")
    @classmethod
    def _check_interests(cls, value: list[str]) -> list[str]:
        return _check_entries(value, 20, 50, "interests") or []


class OnboardingStatus(BaseModel):
    complete: bool
    completion_percent: int
    missing: list[str]


class ProfileSummary(BaseModel):
    """Author/member display fields embedded in other responses."""

    id: str
    username: str | None
    name: str | None
    avatar_url: str | None
    display_name: str

    model_config = ConfigDict(from_attributes=True)


class PublicProfileOut(ProfileSummary):
    """Profile as seen by other users."""

    bio: str | None
    location: str | None
    instagram: str | None
    languages: list[str]
    countries_traveled: list[str]
    interests: list[str]
    created_at: datetime


class ProfileOut(PublicProfileOut):
    """The caller's own profile."""

    date_of_birth: date | None
    onboarding_complete: bool
    completion_percent: int
