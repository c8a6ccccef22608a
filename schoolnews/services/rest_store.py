"""Content store backed by a hosted Postgres REST + auth service.

Tables are reached through the PostgREST API under ``/rest/v1`` and
accounts through the GoTrue API under ``/auth/v1``. Every call goes through
the retry policy with ``check_connection`` as the reachability probe.
"""

import copy
import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional

import httpx

from schoolnews.errors import (
    AuthError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    StoreError,
    ValidationFailedError,
    format_error,
)
from schoolnews.schemas import (
    ALL_SCHOOL,
    REACTION_TYPES,
    ActivityEntry,
    Author,
    AuthSession,
    BannedUser,
    BlogSettings,
    Comment,
    Post,
    PostCreate,
    PostUpdate,
    Statistics,
    UserProfile,
)
from schoolnews.services.retry import RetryPolicy
from schoolnews.services.store import (
    ContentStore,
    count_reactions,
    is_scheduled,
    level_statistics,
    merge_activity,
    sort_posts,
    validate_sort,
)
from schoolnews.utils.dates import utc_now

logger = logging.getLogger(__name__)

AUTHOR_SELECT = "author:user_profiles!{fk}(id,email,name)"
COMMENT_SELECT = "id,post_id,content,created_at," + AUTHOR_SELECT.format(fk="comments_author_id_fkey")
POST_SELECT = ",".join([
    "*",
    AUTHOR_SELECT.format(fk="posts_author_id_fkey"),
    f"comments({COMMENT_SELECT})",
    "reactions(type)",
])
BANNED_SELECT = "id,user_id,reason,banned_by,created_at,user:user_profiles!banned_users_user_id_fkey(name,email)"

ERRORS_BY_STATUS = {
    401: AuthError,
    403: PermissionDeniedError,
    404: NotFoundError,
    409: ConflictError,
    422: ValidationFailedError,
}

# Only these are safe to abandon mid-flight and send again
IDEMPOTENT_METHODS = ("GET", "HEAD", "PUT", "DELETE")


def _iso_now() -> str:
    return utc_now().isoformat() + "Z"


def _quote_filter(value: str) -> str:
    """Double-quote a value so PostgREST reads commas and parentheses literally."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _error_from_response(response: httpx.Response) -> StoreError:
    try:
        body = response.json()
    except ValueError:
        body = {"message": response.text or response.reason_phrase}
    message = format_error(body)
    error_cls = ERRORS_BY_STATUS.get(response.status_code, StoreError)
    return error_cls(message, status=response.status_code)


def _author(row: Optional[Dict[str, Any]]) -> Author:
    row = row or {}
    return Author(
        id=row.get("id", ""),
        name=row.get("name") or "Unknown User",
        email=row.get("email", ""),
    )


def _comment(row: Dict[str, Any], post_id: Optional[str] = None) -> Comment:
    return Comment(
        id=row["id"],
        post_id=row.get("post_id") or post_id,
        content=row["content"],
        created_at=row["created_at"],
        author=_author(row.get("author")),
    )


def _post(row: Dict[str, Any]) -> Post:
    comments = [_comment(c, row["id"]) for c in row.get("comments") or []]
    return Post(
        id=row["id"],
        title=row["title"],
        content=row["content"],
        cover_image=row["cover_image"],
        video_url=row.get("video_url"),
        published_at=row["published_at"],
        reading_time=row.get("reading_time") or 5,
        educational_level=row.get("educational_level") or [],
        author=_author(row.get("author")),
        comments=sorted(comments, key=lambda c: c.created_at),
        reactions=count_reactions(r["type"] for r in row.get("reactions") or []),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def _profile(row: Dict[str, Any], role: Optional[str] = None) -> UserProfile:
    return UserProfile(
        id=row["id"],
        email=row["email"],
        name=row["name"],
        role=role or row.get("role") or "USER",
        created_at=row.get("created_at"),
    )


def _banned(row: Dict[str, Any]) -> BannedUser:
    user = row.get("user") or {}
    return BannedUser(
        id=row["id"],
        user_id=row["user_id"],
        name=user.get("name"),
        email=user.get("email"),
        reason=row["reason"],
        banned_by=row["banned_by"],
        created_at=row["created_at"],
    )


def _settings(row: Dict[str, Any]) -> BlogSettings:
    defaults = BlogSettings()
    return BlogSettings(
        title=row.get("title") or defaults.title,
        description=row.get("description") or defaults.description,
        posts_per_page=row.get("posts_per_page") or defaults.posts_per_page,
        theme=row.get("theme") or defaults.theme,
        social_links=row.get("social_links") or {},
        default_author_name=row.get("default_author_name") or defaults.default_author_name,
        default_author_email=row.get("default_author_email") or defaults.default_author_email,
    )


def _total_from_range(response: httpx.Response) -> int:
    # Content-Range: 0-24/3573 or */0
    content_range = response.headers.get("content-range", "")
    _, _, total = content_range.partition("/")
    return int(total) if total.isdigit() else 0


class RestContentStore(ContentStore):
    """Content store over the hosted backend's REST and auth APIs."""

    name = "rest"

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        retry_policy: Optional[RetryPolicy] = None,
        service_key: Optional[str] = None,
    ):
        self.client = client
        self.api_key = api_key
        self.service_key = service_key
        self.retry = retry_policy or RetryPolicy()
        self.token: Optional[str] = None

    async def close(self) -> None:
        await self.client.aclose()

    def with_token(self, token: Optional[str]) -> "RestContentStore":
        """A view of this store that sends ``token`` so row-level policies see the caller."""
        if not token or token == self.token:
            return self
        scoped = copy.copy(self)
        scoped.token = token
        return scoped

    def _headers(self, token: Optional[str] = None, prefer: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {token or self.token or self.service_key or self.api_key}",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def check_connection(self) -> bool:
        try:
            response = await self.client.get(
                "/rest/v1/settings",
                params={"select": "id", "limit": 1},
                headers=self._headers(),
            )
            return response.status_code < 400
        except httpx.HTTPError as e:
            logger.warning(f"Content store unreachable: {e}")
            return False

    async def _send(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        token: Optional[str] = None,
        prefer: Optional[str] = None,
    ) -> httpx.Response:
        response = await self.client.request(
            method,
            path,
            params=params,
            json=json,
            headers=self._headers(token, prefer),
        )
        if response.status_code >= 400:
            error = _error_from_response(response)
            logger.error(f"{method} {path} failed ({response.status_code}): {error.message}")
            raise error
        return response

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        policy = self.retry
        if method not in IDEMPOTENT_METHODS and policy.attempt_timeout is not None:
            # A timed-out write may still have been applied
            policy = replace(policy, attempt_timeout=None)
        return await policy.call(
            lambda: self._send(method, path, **kwargs),
            probe=self.check_connection,
        )

    async def _rows(self, path: str, params: Dict[str, Any], **kwargs) -> List[Dict[str, Any]]:
        response = await self._request("GET", path, params=params, **kwargs)
        return response.json() or []

    # --- Auth ---

    async def _session_from_auth(self, data: Dict[str, Any]) -> AuthSession:
        token = data.get("access_token")
        user = data.get("user") or {}
        if not token or not user:
            raise AuthError("Failed to create a session; check email confirmation settings")
        profile = await self._profile_for(user, token)
        return AuthSession(user=profile, access_token=token)

    async def _profile_for(self, user: Dict[str, Any], token: Optional[str] = None) -> UserProfile:
        metadata = user.get("user_metadata") or {}
        rows = await self._rows(
            "/rest/v1/user_profiles",
            {"select": "*", "id": f"eq.{user['id']}"},
            token=token,
        )
        if rows:
            return _profile(rows[0], rows[0].get("role") or metadata.get("role"))
        return UserProfile(
            id=user["id"],
            email=user.get("email", ""),
            name=metadata.get("name") or "Unknown User",
            role=metadata.get("role") or "USER",
        )

    async def register(self, email: str, password: str, name: str) -> AuthSession:
        response = await self._request(
            "POST",
            "/auth/v1/signup",
            json={"email": email, "password": password, "data": {"name": name, "role": "USER"}},
        )
        return await self._session_from_auth(response.json())

    async def login(self, email: str, password: str) -> AuthSession:
        try:
            response = await self._request(
                "POST",
                "/auth/v1/token",
                params={"grant_type": "password"},
                json={"email": email, "password": password},
            )
        except StoreError as e:
            # The auth API answers bad credentials with 400 invalid_grant
            if e.status == 400:
                raise AuthError(e.message or "Invalid login credentials")
            raise
        return await self._session_from_auth(response.json())

    async def logout(self, token: str) -> None:
        await self._request("POST", "/auth/v1/logout", token=token)

    async def get_user_for_token(self, token: str) -> Optional[UserProfile]:
        if not token:
            return None
        try:
            response = await self._request("GET", "/auth/v1/user", token=token)
        except AuthError:
            return None
        return await self._profile_for(response.json(), token)

    # --- Posts ---

    async def list_posts(
        self,
        level: Optional[str] = None,
        search: Optional[str] = None,
        sort_by: str = "date",
        sort_order: str = "desc",
        include_scheduled: bool = False,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Post]:
        validate_sort(sort_by, sort_order)
        params: Dict[str, Any] = {
            "select": POST_SELECT,
            "order": f"published_at.{sort_order}",
        }
        if level and level != ALL_SCHOOL:
            params["educational_level"] = f'cs.{{"{level}"}}'
        if search:
            pattern = _quote_filter(f"*{search}*")
            params["or"] = f"(title.ilike.{pattern},content.ilike.{pattern})"
        if not include_scheduled:
            params["published_at"] = f"lte.{_iso_now()}"

        posts = sort_posts([_post(row) for row in await self._rows("/rest/v1/posts", params)], sort_by, sort_order)
        if limit is None:
            return posts[offset:]
        return posts[offset:offset + limit]

    async def get_post(self, post_id: str, include_scheduled: bool = False) -> Post:
        rows = await self._rows("/rest/v1/posts", {"select": POST_SELECT, "id": f"eq.{post_id}"})
        if not rows:
            raise NotFoundError("Post not found")
        post = _post(rows[0])
        if not include_scheduled and is_scheduled(post):
            raise NotFoundError("Post not found")
        return post

    def _post_payload(self, data: PostCreate) -> Dict[str, Any]:
        payload = {
            "title": data.title,
            "content": data.content,
            "cover_image": data.cover_image,
            "video_url": data.video_url,
            "educational_level": data.educational_level,
            "reading_time": data.estimated_reading_time,
        }
        if data.published_at:
            payload["published_at"] = data.published_at.isoformat()
        return payload

    async def create_post(self, author_id: str, data: PostCreate) -> Post:
        payload = self._post_payload(data)
        payload["author_id"] = author_id
        response = await self._request(
            "POST", "/rest/v1/posts", json=payload, prefer="return=representation"
        )
        rows = response.json()
        if not rows:
            raise StoreError("Failed to create post")
        logger.info(f"Created post {rows[0]['id']}")
        return await self.get_post(rows[0]["id"], include_scheduled=True)

    async def update_post(self, post_id: str, data: PostUpdate) -> Post:
        payload = self._post_payload(data)
        payload["updated_at"] = _iso_now()
        response = await self._request(
            "PATCH",
            "/rest/v1/posts",
            params={"id": f"eq.{post_id}"},
            json=payload,
            prefer="return=representation",
        )
        if not response.json():
            raise NotFoundError("Post not found")
        return await self.get_post(post_id, include_scheduled=True)

    async def delete_post(self, post_id: str) -> bool:
        response = await self._request(
            "DELETE",
            "/rest/v1/posts",
            params={"id": f"eq.{post_id}"},
            prefer="return=representation",
        )
        if not response.json():
            raise NotFoundError("Post not found")
        logger.info(f"Deleted post {post_id}")
        return True

    # --- Comments ---

    async def _ensure_post(self, post_id: str) -> None:
        if not await self._rows("/rest/v1/posts", {"select": "id", "id": f"eq.{post_id}"}):
            raise NotFoundError("Post not found")

    async def list_comments(self, post_id: str) -> List[Comment]:
        await self._ensure_post(post_id)
        rows = await self._rows(
            "/rest/v1/comments",
            {"select": COMMENT_SELECT, "post_id": f"eq.{post_id}", "order": "created_at.asc"},
        )
        return [_comment(row, post_id) for row in rows]

    async def get_comment(self, post_id: str, comment_id: str) -> Comment:
        rows = await self._rows(
            "/rest/v1/comments",
            {"select": COMMENT_SELECT, "id": f"eq.{comment_id}", "post_id": f"eq.{post_id}"},
        )
        if not rows:
            raise NotFoundError("Comment not found")
        return _comment(rows[0], post_id)

    async def add_comment(self, post_id: str, author_id: str, content: str) -> List[Comment]:
        await self._ensure_post(post_id)
        await self._request(
            "POST",
            "/rest/v1/comments",
            json={"post_id": post_id, "content": content, "author_id": author_id},
            prefer="return=minimal",
        )
        return await self.list_comments(post_id)

    async def remove_comment(self, post_id: str, comment_id: str) -> List[Comment]:
        await self.get_comment(post_id, comment_id)
        await self._request(
            "DELETE",
            "/rest/v1/comments",
            params={"id": f"eq.{comment_id}", "post_id": f"eq.{post_id}"},
        )
        return await self.list_comments(post_id)

    # --- Reactions ---

    async def get_reactions(self, post_id: str) -> Dict[str, int]:
        await self._ensure_post(post_id)
        rows = await self._rows("/rest/v1/reactions", {"select": "type", "post_id": f"eq.{post_id}"})
        return count_reactions(row["type"] for row in rows)

    async def toggle_reaction(self, post_id: str, user_id: str, reaction_type: str) -> Dict[str, int]:
        if reaction_type not in REACTION_TYPES:
            raise ValidationFailedError(f"Unknown reaction type '{reaction_type}'")
        await self._ensure_post(post_id)
        filters = {
            "post_id": f"eq.{post_id}",
            "user_id": f"eq.{user_id}",
            "type": f"eq.{reaction_type}",
        }
        existing = await self._rows("/rest/v1/reactions", {"select": "id", **filters})
        if existing:
            await self._request("DELETE", "/rest/v1/reactions", params={"id": f"eq.{existing[0]['id']}"})
        else:
            await self._request(
                "POST",
                "/rest/v1/reactions",
                json={"post_id": post_id, "user_id": user_id, "type": reaction_type},
                prefer="return=minimal",
            )
        return await self.get_reactions(post_id)

    # --- Settings ---

    async def get_settings(self) -> BlogSettings:
        try:
            rows = await self._rows("/rest/v1/settings", {"select": "*", "limit": 1})
        except StoreError as e:
            logger.error(f"Error fetching settings, using defaults: {e}")
            return BlogSettings()
        if not rows:
            logger.info("Using default settings")
            return BlogSettings()
        return _settings(rows[0])

    async def update_settings(self, settings: BlogSettings) -> BlogSettings:
        existing = await self._rows("/rest/v1/settings", {"select": "id", "limit": 1})
        payload = settings.model_dump()
        payload["updated_at"] = _iso_now()
        if existing:
            payload["id"] = existing[0]["id"]
        response = await self._request(
            "POST",
            "/rest/v1/settings",
            json=payload,
            prefer="resolution=merge-duplicates,return=representation",
        )
        rows = response.json()
        if not rows:
            raise StoreError("Failed to update settings")
        return _settings(rows[0])

    # --- Dashboard ---

    async def get_recent_activity(self, limit: int = 10) -> List[ActivityEntry]:
        posts = await self._rows(
            "/rest/v1/posts",
            {
                "select": "id,title,created_at,author:user_profiles!posts_author_id_fkey(id,name)",
                "order": "created_at.desc",
                "limit": limit,
            },
        )
        comments = await self._rows(
            "/rest/v1/comments",
            {
                "select": "id,post_id,created_at,author:user_profiles!comments_author_id_fkey(id,name),posts(title)",
                "order": "created_at.desc",
                "limit": limit,
            },
        )
        entries = [
            ActivityEntry(
                timestamp=row["created_at"],
                user=(row.get("author") or {}).get("name") or "Unknown User",
                action="created a new post",
                post=row["title"],
            )
            for row in posts
        ] + [
            ActivityEntry(
                timestamp=row["created_at"],
                user=(row.get("author") or {}).get("name") or "Unknown User",
                action="commented on",
                post=(row.get("posts") or {}).get("title") or "Unknown Post",
            )
            for row in comments
        ]
        return merge_activity(entries, limit)

    async def _count(self, path: str) -> int:
        response = await self._request(
            "GET", path, params={"select": "id", "limit": 1}, prefer="count=exact"
        )
        return _total_from_range(response)

    async def get_statistics(self) -> Statistics:
        posts = await self._rows("/rest/v1/posts", {"select": "id,educational_level"})
        return Statistics(
            total_posts=len(posts),
            total_comments=await self._count("/rest/v1/comments"),
            total_users=await self._count("/rest/v1/user_profiles"),
            posts_by_level=level_statistics(row.get("educational_level") or [] for row in posts),
        )

    # --- Users ---

    async def list_users(self) -> List[UserProfile]:
        rows = await self._rows("/rest/v1/user_profiles", {"select": "*", "order": "created_at.asc"})
        return [_profile(row) for row in rows]

    async def update_user_role(self, user_id: str, role: str) -> List[UserProfile]:
        response = await self._request(
            "PATCH",
            "/rest/v1/user_profiles",
            params={"id": f"eq.{user_id}"},
            json={"role": role},
            prefer="return=representation",
        )
        if not response.json():
            raise NotFoundError("User not found")
        logger.info(f"Changed role of user {user_id} to {role}")
        return await self.list_users()

    async def ban_user(self, user_id: str, reason: str, banned_by: str) -> BannedUser:
        await self._request(
            "POST",
            "/rest/v1/banned_users",
            json={"user_id": user_id, "reason": reason, "banned_by": banned_by},
            prefer="return=minimal",
        )
        rows = await self._rows("/rest/v1/banned_users", {"select": BANNED_SELECT, "user_id": f"eq.{user_id}"})
        if not rows:
            raise StoreError("Failed to ban user")
        logger.info(f"User {user_id} banned by {banned_by}")
        return _banned(rows[0])

    async def unban_user(self, user_id: str) -> bool:
        response = await self._request(
            "DELETE",
            "/rest/v1/banned_users",
            params={"user_id": f"eq.{user_id}"},
            prefer="return=representation",
        )
        return bool(response.json())

    async def get_banned_users(self) -> List[BannedUser]:
        rows = await self._rows(
            "/rest/v1/banned_users",
            {"select": BANNED_SELECT, "order": "created_at.desc"},
        )
        return [_banned(row) for row in rows]

    async def is_banned(self, user_id: str) -> bool:
        rows = await self._rows("/rest/v1/banned_users", {"select": "id", "user_id": f"eq.{user_id}"})
        return bool(rows)
