"""Content store interface shared by the SQL and hosted backends."""

from abc import ABC, abstractmethod
from collections import Counter
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from schoolnews.schemas import (
    ALL_SCHOOL,
    REACTION_TYPES,
    ActivityEntry,
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
from schoolnews.utils.dates import to_naive_utc, utc_now

SORT_FIELDS = ("date", "comments")
SORT_ORDERS = ("asc", "desc")


def empty_reactions() -> Dict[str, int]:
    return {reaction: 0 for reaction in REACTION_TYPES}


def count_reactions(types: Iterable[str]) -> Dict[str, int]:
    counts = empty_reactions()
    counts.update(Counter(types))
    return counts


def level_matches(levels: List[str], level: Optional[str]) -> bool:
    if not level or level == ALL_SCHOOL:
        return True
    return level in levels


def sort_posts(posts: List[Post], sort_by: str = "date", sort_order: str = "desc") -> List[Post]:
    reverse = sort_order != "asc"
    if sort_by == "comments":
        return sorted(posts, key=lambda p: (len(p.comments), p.published_at), reverse=reverse)
    return sorted(posts, key=lambda p: p.published_at, reverse=reverse)


def merge_activity(entries: Iterable[ActivityEntry], limit: int = 10) -> List[ActivityEntry]:
    """Newest first, truncated to ``limit``."""
    return sorted(entries, key=lambda e: e.timestamp, reverse=True)[:limit]


def level_statistics(levels_per_post: Iterable[List[str]]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for levels in levels_per_post:
        for level in levels or []:
            counts[level] = counts.get(level, 0) + 1
    return counts


def validate_sort(sort_by: str, sort_order: str) -> None:
    if sort_by not in SORT_FIELDS:
        raise ValueError(f"sort_by must be one of {', '.join(SORT_FIELDS)}")
    if sort_order not in SORT_ORDERS:
        raise ValueError(f"sort_order must be one of {', '.join(SORT_ORDERS)}")


class ContentStore(ABC):
    """CRUD access to posts, comments, reactions, settings and users."""

    name = "base"

    async def close(self) -> None:
        pass

    def with_token(self, token: Optional[str]) -> "ContentStore":
        """The store to use on behalf of the holder of ``token``."""
        return self

    @abstractmethod
    async def check_connection(self) -> bool:
        """Cheap reachability probe."""

    # --- Auth ---

    @abstractmethod
    async def register(self, email: str, password: str, name: str) -> AuthSession: ...

    @abstractmethod
    async def login(self, email: str, password: str) -> AuthSession: ...

    @abstractmethod
    async def logout(self, token: str) -> None: ...

    @abstractmethod
    async def get_user_for_token(self, token: str) -> Optional[UserProfile]: ...

    # --- Posts ---

    @abstractmethod
    async def list_posts(
        self,
        level: Optional[str] = None,
        search: Optional[str] = None,
        sort_by: str = "date",
        sort_order: str = "desc",
        include_scheduled: bool = False,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Post]: ...

    @abstractmethod
    async def get_post(self, post_id: str, include_scheduled: bool = False) -> Post: ...

    @abstractmethod
    async def create_post(self, author_id: str, data: PostCreate) -> Post: ...

    @abstractmethod
    async def update_post(self, post_id: str, data: PostUpdate) -> Post: ...

    @abstractmethod
    async def delete_post(self, post_id: str) -> bool: ...

    # --- Comments ---

    @abstractmethod
    async def list_comments(self, post_id: str) -> List[Comment]: ...

    @abstractmethod
    async def get_comment(self, post_id: str, comment_id: str) -> Comment: ...

    @abstractmethod
    async def add_comment(self, post_id: str, author_id: str, content: str) -> List[Comment]: ...

    @abstractmethod
    async def remove_comment(self, post_id: str, comment_id: str) -> List[Comment]: ...

    # --- Reactions ---

    @abstractmethod
    async def get_reactions(self, post_id: str) -> Dict[str, int]: ...

    @abstractmethod
    async def toggle_reaction(self, post_id: str, user_id: str, reaction_type: str) -> Dict[str, int]: ...

    # --- Settings ---

    @abstractmethod
    async def get_settings(self) -> BlogSettings: ...

    @abstractmethod
    async def update_settings(self, settings: BlogSettings) -> BlogSettings: ...

    # --- Dashboard ---

    @abstractmethod
    async def get_recent_activity(self, limit: int = 10) -> List[ActivityEntry]: ...

    @abstractmethod
    async def get_statistics(self) -> Statistics: ...

    # --- Users ---

    @abstractmethod
    async def list_users(self) -> List[UserProfile]: ...

    @abstractmethod
    async def update_user_role(self, user_id: str, role: str) -> List[UserProfile]: ...

    @abstractmethod
    async def ban_user(self, user_id: str, reason: str, banned_by: str) -> BannedUser: ...

    @abstractmethod
    async def unban_user(self, user_id: str) -> bool: ...

    @abstractmethod
    async def get_banned_users(self) -> List[BannedUser]: ...

    async def is_banned(self, user_id: str) -> bool:
        banned = await self.get_banned_users()
        return any(entry.user_id == user_id for entry in banned)


def is_scheduled(post: Post, now: Optional[datetime] = None) -> bool:
    """A post is scheduled while its publish time lies in the future."""
    return to_naive_utc(post.published_at) > (now or utc_now())
