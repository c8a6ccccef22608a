from fastapi import APIRouter, Depends
from typing import Dict, Optional

from schoolnews.deps import get_current_user, get_optional_user, get_store
from schoolnews.schemas import ReactionToggle, UserProfile
from schoolnews.services.store import ContentStore

router = APIRouter(prefix="/api/posts/{post_id}/reactions", tags=["reactions"])


@router.get("", response_model=Dict[str, int])
async def get_reactions(
    post_id: str,
    user: Optional[UserProfile] = Depends(get_optional_user),
    store: ContentStore = Depends(get_store),
):
    await store.get_post(post_id, include_scheduled=bool(user and user.is_admin))
    return await store.get_reactions(post_id)


@router.post("", response_model=Dict[str, int])
async def toggle_reaction(
    post_id: str,
    data: ReactionToggle,
    user: UserProfile = Depends(get_current_user),
    store: ContentStore = Depends(get_store),
):
    """Add the reaction, or remove it if the user already gave it"""
    await store.get_post(post_id, include_scheduled=user.is_admin)
    return await store.toggle_reaction(post_id, user.id, data.type)
