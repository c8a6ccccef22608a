"""FastAPI dependencies: the injected store, sanitizer and current user."""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from typing import List, Optional

from schoolnews.schemas import Comment, Post, UserProfile
from schoolnews.services.store import ContentStore
from schoolnews.utils.sanitize import Sanitizer, render_comment

bearer_scheme = HTTPBearer(auto_error=False)


def get_sanitizer(request: Request) -> Sanitizer:
    return request.app.state.sanitizer


async def get_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[str]:
    if credentials is None or not credentials.credentials:
        return None
    return credentials.credentials


def get_store(request: Request, token: Optional[str] = Depends(get_token)) -> ContentStore:
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Content store is not ready"
        )
    return store.with_token(token)


async def get_optional_user(
    token: Optional[str] = Depends(get_token),
    store: ContentStore = Depends(get_store),
) -> Optional[UserProfile]:
    if token is None:
        return None
    return await store.get_user_for_token(token)


async def get_current_user(user: Optional[UserProfile] = Depends(get_optional_user)) -> UserProfile:
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="You must be logged in",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def require_admin(user: UserProfile = Depends(get_current_user)) -> UserProfile:
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator access required"
        )
    return user


def render_comments(comments: List[Comment], sanitizer: Sanitizer) -> List[Comment]:
    """Attach sanitized markup to each comment for rendering."""
    return [
        c.model_copy(update={"content_html": str(render_comment(c.content, sanitizer))})
        for c in comments
    ]


def render_post(post: Post, sanitizer: Sanitizer) -> Post:
    return post.model_copy(update={"comments": render_comments(post.comments, sanitizer)})
