"""
Friend suggestions — GET /suggestions?viewer_id=<id>&limit=<n>

Candidates come from the viewer's two-hop follow graph and from popular,
recently active accounts; ranking is SuggestionEngine's rich-get-richer
score. Viewer preferences are read through the Redis preferences cache.
Only profile fields and the mutual-connection count leave the service.
"""
import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from feedrank.clients.redis_client import PreferencesCache, get_preferences_cache
from feedrank.config import settings
from feedrank.database import get_db
from feedrank.ranking.interactions import InteractionStore
from feedrank.ranking.suggestions import SuggestedUser, SuggestionEngine
from feedrank.schemas import SuggestedUserResponse, SuggestionResponse

logger = logging.getLogger(__name__)
router = APIRouter()


def _build_suggested_user(suggested: SuggestedUser) -> SuggestedUserResponse:
    user = suggested.user
    return SuggestedUserResponse(
        user_id=user.user_id,
        username=user.username,
        full_name=user.full_name,
        profile_picture=user.profile_picture,
        is_verified=user.is_verified,
        bio=user.bio,
        city=user.city,
        followers_count=user.followers_count,
        mutual_connections=suggested.mutual_connections,
    )


@router.get("/", response_model=SuggestionResponse)
async def get_suggestions(
    viewer_id: str = Query(..., description="ID of the requesting user"),
    limit: int = Query(settings.suggestion_default_limit, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
    preferences_cache: PreferencesCache = Depends(get_preferences_cache),
):
    engine = SuggestionEngine(
        db,
        preferences_loader=preferences_cache.loader_for(InteractionStore(db).get_preferences),
    )
    result = await engine.suggest(viewer_id, limit=limit)
    logger.info(
        "Suggestions served: viewer=%s returned=%d", viewer_id, len(result.users)
    )
    return SuggestionResponse(
        users=[_build_suggested_user(s) for s in result.users],
        algorithm=result.algorithm,
        factors=result.factors,
        metadata=result.metadata,
    )
