from fastapi import APIRouter, Depends, HTTPException, status
from typing import List, Optional

from schoolnews.deps import get_current_user, get_optional_user, get_sanitizer, get_store, render_comments
from schoolnews.schemas import Comment, CommentCreate, UserProfile
from schoolnews.services.store import ContentStore
from schoolnews.utils.sanitize import Sanitizer, prepare_comment

router = APIRouter(prefix="/api/posts/{post_id}/comments", tags=["comments"])


@router.get("", response_model=List[Comment])
async def list_comments(
    post_id: str,
    user: Optional[UserProfile] = Depends(get_optional_user),
    store: ContentStore = Depends(get_store),
    sanitizer: Sanitizer = Depends(get_sanitizer),
):
    await store.get_post(post_id, include_scheduled=bool(user and user.is_admin))
    return render_comments(await store.list_comments(post_id), sanitizer)


@router.post("", response_model=List[Comment], status_code=status.HTTP_201_CREATED)
async def add_comment(
    post_id: str,
    data: CommentCreate,
    user: UserProfile = Depends(get_current_user),
    store: ContentStore = Depends(get_store),
    sanitizer: Sanitizer = Depends(get_sanitizer),
):
    """Add a comment and return the post's updated comment list"""
    if await store.is_banned(user.id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You have been banned from commenting"
        )
    await store.get_post(post_id, include_scheduled=user.is_admin)

    # Only linkified, sanitized markup reaches the store
    content = prepare_comment(data.content, sanitizer)
    if not content.strip():
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Comment cannot be empty"
        )
    comments = await store.add_comment(post_id, user.id, content)
    return render_comments(comments, sanitizer)


@router.delete("/{comment_id}", response_model=List[Comment])
async def delete_comment(
    post_id: str,
    comment_id: str,
    user: UserProfile = Depends(get_current_user),
    store: ContentStore = Depends(get_store),
    sanitizer: Sanitizer = Depends(get_sanitizer),
):
    """Delete a comment (its author or an admin) and return the updated list"""
    comment = await store.get_comment(post_id, comment_id)
    if comment.author.id != user.id and not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only delete your own comments"
        )
    comments = await store.remove_comment(post_id, comment_id)
    return render_comments(comments, sanitizer)
