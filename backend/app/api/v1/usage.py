"""
Usage API endpoints.

Per-user feature counters consumed by the analysis service: read a
snapshot, increment a counter, and the signed-in user's upload stats.
"""

from fastapi import APIRouter, Depends
from pydantic import AliasChoices, BaseModel, Field

from app.api.deps import get_usage_store, require_verified_user
from app.api.v1.auth import EmailField, validate_email
from app.core.exceptions import ValidationError
from app.models import User
from app.services.usage import MAX_INCREMENT, UsageCounterStore

router = APIRouter()


# ============== Pydantic Schemas ==============


class IncrementRequest(BaseModel):
    """Schema for a counter increment. ``fieldType``/``count`` are accepted for older clients."""

    email: EmailField
    counter: str = Field(
        default="filesUploaded",
        validation_alias=AliasChoices("counter", "fieldType"),
    )
    amount: int = Field(
        default=1,
        ge=1,
        le=MAX_INCREMENT,
        validation_alias=AliasChoices("amount", "count"),
    )


class UsageResponse(BaseModel):
    success: bool = True
    message: str
    email: str
    counters: dict[str, int]
    limits: dict[str, int]
    remaining: dict[str, int]


class UsageStatsResponse(UsageResponse):
    percentage: float
    canUpload: bool


# ============== API Endpoints ==============


@router.get("/me/stats", response_model=UsageStatsResponse)
async def get_my_usage_stats(
    current_user: User = Depends(require_verified_user),
    usage: UsageCounterStore = Depends(get_usage_store),
):
    """
    Detailed usage statistics for the signed-in user.

    Requires a valid access token and a verified email.
    """
    stats = usage.stats(current_user.email)
    return UsageStatsResponse(message="Usage statistics retrieved successfully", **stats)


@router.get("/{email}", response_model=UsageResponse)
async def get_usage(
    email: str,
    usage: UsageCounterStore = Depends(get_usage_store),
):
    """Current counters, limits and remaining quota for a user."""
    try:
        email = validate_email(email)
    except ValueError as e:
        raise ValidationError(str(e))

    snapshot = usage.get(email)
    return UsageResponse(message="Usage retrieved successfully", **snapshot.to_dict())


@router.post("/increment", response_model=UsageResponse)
async def increment_counter(
    payload: IncrementRequest,
    usage: UsageCounterStore = Depends(get_usage_store),
):
    """
    Atomically increment one of the user's counters.

    Counters: filesUploaded, batchAnalysisCount, compareResumesCount,
    selectedCandidateCount (limited to 10).
    """
    snapshot = usage.increment(payload.email, payload.counter, payload.amount)
    return UsageResponse(
        message=f"{payload.counter} incremented successfully",
        **snapshot.to_dict(),
    )
