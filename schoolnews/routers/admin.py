from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from typing import List
import logging

from schoolnews.deps import get_store, require_admin
from schoolnews.schemas import (
    ActivityEntry,
    BanRequest,
    BannedUser,
    BlogSettings,
    RoleUpdate,
    Statistics,
    UserProfile,
)
from schoolnews.services.store import ContentStore

logger = logging.getLogger(__name__)

settings_router = APIRouter(prefix="/api/settings", tags=["settings"])
router = APIRouter(prefix="/api/admin", tags=["admin"])


@settings_router.get("", response_model=BlogSettings)
async def get_settings(store: ContentStore = Depends(get_store)):
    """Public blog settings"""
    return await store.get_settings()


@settings_router.put("", response_model=BlogSettings)
async def update_settings(
    data: BlogSettings,
    admin: UserProfile = Depends(require_admin),
    store: ContentStore = Depends(get_store),
):
    settings = await store.update_settings(data)
    logger.info(f"Settings updated by {admin.id}")
    return settings


@router.get("/activity", response_model=List[ActivityEntry])
async def recent_activity(
    limit: int = Query(10, ge=1, le=50),
    admin: UserProfile = Depends(require_admin),
    store: ContentStore = Depends(get_store),
):
    return await store.get_recent_activity(limit)


@router.get("/statistics", response_model=Statistics)
async def statistics(
    admin: UserProfile = Depends(require_admin),
    store: ContentStore = Depends(get_store),
):
    return await store.get_statistics()


@router.get("/users", response_model=List[UserProfile])
async def list_users(
    admin: UserProfile = Depends(require_admin),
    store: ContentStore = Depends(get_store),
):
    return await store.list_users()


@router.put("/users/{user_id}/role", response_model=List[UserProfile])
async def update_user_role(
    user_id: str,
    data: RoleUpdate,
    admin: UserProfile = Depends(require_admin),
    store: ContentStore = Depends(get_store),
):
    """Change a user's role and return the updated user list"""
    if user_id == admin.id and data.role != "ADMIN":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot remove your own admin role"
        )
    return await store.update_user_role(user_id, data.role)


@router.post("/users/{user_id}/ban", response_model=BannedUser, status_code=status.HTTP_201_CREATED)
async def ban_user(
    user_id: str,
    data: BanRequest,
    admin: UserProfile = Depends(require_admin),
    store: ContentStore = Depends(get_store),
):
    """Ban a user from commenting"""
    if user_id == admin.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot ban yourself"
        )
    return await store.ban_user(user_id, data.reason, admin.id)


@router.delete("/users/{user_id}/ban", status_code=status.HTTP_204_NO_CONTENT)
async def unban_user(
    user_id: str,
    admin: UserProfile = Depends(require_admin),
    store: ContentStore = Depends(get_store),
):
    if not await store.unban_user(user_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User is not banned"
        )
    logger.info(f"User {user_id} unbanned by {admin.id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/banned-users", response_model=List[BannedUser])
async def banned_users(
    admin: UserProfile = Depends(require_admin),
    store: ContentStore = Depends(get_store),
):
    return await store.get_banned_users()
