from fastapi import APIRouter, Depends, HTTPException, Response, status
from typing import Optional

from schoolnews.deps import get_current_user, get_store, get_token
from schoolnews.schemas import AuthSession, LoginRequest, RegisterRequest, UserProfile
from schoolnews.services.store import ContentStore

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register", response_model=AuthSession, status_code=status.HTTP_201_CREATED)
async def register(data: RegisterRequest, store: ContentStore = Depends(get_store)):
    """Create an account and return a session"""
    return await store.register(data.email, data.password, data.name.strip())


@router.post("/login", response_model=AuthSession)
async def login(data: LoginRequest, store: ContentStore = Depends(get_store)):
    return await store.login(data.email, data.password)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    token: Optional[str] = Depends(get_token),
    store: ContentStore = Depends(get_store),
):
    if token is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not logged in")
    await store.logout(token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/me", response_model=UserProfile)
async def me(user: UserProfile = Depends(get_current_user)):
    return user
