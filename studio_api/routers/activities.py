"""Activity feed endpoint."""

from typing import Annotated

from fastapi import APIRouter, Depends

from studio_api.config import settings
from studio_api.database import StudioDB
from studio_api.dependencies import get_db
from studio_api.models.responses import ActivityResponse

router = APIRouter(prefix="/activities", tags=["activities"])


@router.get(
    "",
    response_model=list[ActivityResponse],
    summary="Recent activity",
    description="Latest activity entries, newest first.",
)
async def list_activities(db: Annotated[StudioDB, Depends(get_db)]) -> list[ActivityResponse]:
    return [ActivityResponse(**a) for a in db.list_activities(settings.activity_feed_limit)]
