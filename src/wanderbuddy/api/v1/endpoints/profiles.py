"""Profile and onboarding endpoints."""

from __future__ import annotations

from fastapi import APIRouter, File, UploadFile

from wanderbuddy.api.v1.dependencies import CurrentUserDep, SessionDep
from wanderbuddy.models import Profile
from wanderbuddy.schemas.profile import (
    OnboardingRequest,
    OnboardingStatus,
    ProfileOut,
    ProfileUpdate,
    PublicProfileOut,
)
from wanderbuddy.services import profiles as profile_service

router = APIRouter(prefix="/profiles", tags=["profiles"])


def _own_profile(profile: Profile) -> ProfileOut:
    public = PublicProfileOut.model_validate(profile)
    return ProfileOut(
        **public.model_dump(),
        date_of_birth=profile.date_of_birth,
        onboarding_complete=profile_service.is_onboarding_complete(profile),
        completion_percent=profile_service.completion_percent(profile),
    )


def _onboarding_status(profile: Profile) -> OnboardingStatus:
    return OnboardingStatus(
        complete=profile_service.is_onboarding_complete(profile),
        completion_percent=profile_service.completion_percent(profile),
        missing=profile_service.missing_parts(profile),
    )


@router.get("/me", response_model=ProfileOut)
async def read_own_profile(current_user: CurrentUserDep) -> ProfileOut:
    return _own_profile(current_user)


@router.patch("/me", response_model=ProfileOut)
async def update_own_profile(
    profile_data: ProfileUpdate,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> ProfileOut:
    profile = profile_service.update_profile(db, current_user, profile_data)
    return _own_profile(profile)


@router.post("/me/avatar", response_model=ProfileOut)
async def upload_avatar(
    current_user: CurrentUserDep,
    db: SessionDep,
    file: UploadFile = File(...),
) -> ProfileOut:
    """Replace the caller's avatar; images only."""
    data = await file.read()
    profile = profile_service.upload_avatar(db, current_user, file.content_type, data)
    return _own_profile(profile)


@router.get("/me/onboarding", response_model=OnboardingStatus)
async def onboarding_status(current_user: CurrentUserDep) -> OnboardingStatus:
    return _onboarding_status(current_user)


@router.post("/me/onboarding", response_model=OnboardingStatus)
async def complete_onboarding(
    onboarding: OnboardingRequest,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> OnboardingStatus:
    profile = profile_service.complete_onboarding(db, current_user, onboarding)
    return _onboarding_status(profile)


@router.get("/{user_id}", response_model=PublicProfileOut)
async def read_profile(user_id: str, _current_user: CurrentUserDep, db: SessionDep) -> Profile:
    return profile_service.get_profile(db, user_id)
