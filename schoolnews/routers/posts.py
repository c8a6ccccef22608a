from fastapi import APIRouter, Depends, Query, Response, status
from typing import Literal, Optional
import logging

from schoolnews.deps import get_optional_user, get_sanitizer, get_store, render_post, require_admin
from schoolnews.schemas import Post, PostCreate, PostPage, PostUpdate, UserProfile
from schoolnews.services.store import ContentStore
from schoolnews.utils.sanitize import Sanitizer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/posts", tags=["posts"])


@router.get("", response_model=PostPage)
async def list_posts(
    level: Optional[str] = None,
    search: Optional[str] = None,
    sort_by: Literal["date", "comments"] = "date",
    sort_order: Literal["asc", "desc"] = "desc",
    page: int = Query(1, ge=1),
    user: Optional[UserProfile] = Depends(get_optional_user),
    store: ContentStore = Depends(get_store),
    sanitizer: Sanitizer = Depends(get_sanitizer),
):
    """List published posts; admins also see scheduled ones"""
    settings = await store.get_settings()
    per_page = settings.posts_per_page

    # Fetch one extra to know whether another page exists
    posts = await store.list_posts(
        level=level,
        search=search.strip() if search else None,
        sort_by=sort_by,
        sort_order=sort_order,
        include_scheduled=bool(user and user.is_admin),
        limit=per_page + 1,
        offset=(page - 1) * per_page,
    )
    return PostPage(
        items=[render_post(p, sanitizer) for p in posts[:per_page]],
        page=page,
        per_page=per_page,
        has_more=len(posts) > per_page,
    )


@router.get("/{post_id}", response_model=Post)
async def get_post(
    post_id: str,
    user: Optional[UserProfile] = Depends(get_optional_user),
    store: ContentStore = Depends(get_store),
    sanitizer: Sanitizer = Depends(get_sanitizer),
):
    post = await store.get_post(post_id, include_scheduled=bool(user and user.is_admin))
    return render_post(post, sanitizer)


@router.post("", response_model=Post, status_code=status.HTTP_201_CREATED)
async def create_post(
    data: PostCreate,
    admin: UserProfile = Depends(require_admin),
    store: ContentStore = Depends(get_store),
):
    """Create a post; a future published_at schedules it"""
    return await store.create_post(admin.id, data)


@router.put("/{post_id}", response_model=Post)
async def update_post(
    post_id: str,
    data: PostUpdate,
    admin: UserProfile = Depends(require_admin),
    store: ContentStore = Depends(get_store),
    sanitizer: Sanitizer = Depends(get_sanitizer),
):
    post = await store.update_post(post_id, data)
    return render_post(post, sanitizer)


@router.delete("/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_post(
    post_id: str,
    admin: UserProfile = Depends(require_admin),
    store: ContentStore = Depends(get_store),
):
    await store.delete_post(post_id)
    logger.info(f"Post {post_id} deleted by {admin.id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
