from sqlalchemy import select, delete, func, or_
from sqlalchemy.exc import SQLAlchemyError
from typing import Dict, List, Optional
import bcrypt
import hashlib
import logging
import secrets

from schoolnews.database import Database
from schoolnews.errors import AuthError, ConflictError, NotFoundError, StoreError
from schoolnews.models import (
    AuthTokenRecord,
    BannedUserRecord,
    CommentRecord,
    PostRecord,
    ReactionRecord,
    SettingsRecord,
    UserProfileRecord,
)
from schoolnews.schemas import (
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
from schoolnews.services.store import (
    ContentStore,
    count_reactions,
    is_scheduled,
    level_matches,
    level_statistics,
    merge_activity,
    sort_posts,
    validate_sort,
)
from schoolnews.utils.dates import to_naive_utc, utc_now

logger = logging.getLogger(__name__)

# bcrypt only reads the first 72 bytes of a password
BCRYPT_MAX_BYTES = 72


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8")[:BCRYPT_MAX_BYTES], bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, stored: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8")[:BCRYPT_MAX_BYTES], stored.encode("utf-8"))
    except ValueError:
        # Not a bcrypt hash
        return False


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def _author(record: UserProfileRecord) -> Author:
    return Author(id=record.id, name=record.name, email=record.email)


def _profile(record: UserProfileRecord) -> UserProfile:
    return UserProfile(
        id=record.id,
        email=record.email,
        name=record.name,
        role=record.role,
        created_at=record.created_at,
    )


def _comment(record: CommentRecord) -> Comment:
    return Comment(
        id=record.id,
        post_id=record.post_id,
        content=record.content,
        created_at=record.created_at,
        author=_author(record.author),
    )


def _post(record: PostRecord) -> Post:
    return Post(
        id=record.id,
        title=record.title,
        content=record.content,
        cover_image=record.cover_image,
        video_url=record.video_url,
        published_at=record.published_at,
        reading_time=record.reading_time,
        educational_level=list(record.educational_level or []),
        author=_author(record.author),
        comments=[_comment(c) for c in sorted(record.comments, key=lambda c: c.created_at)],
        reactions=count_reactions(r.type for r in record.reactions),
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _banned(record: BannedUserRecord) -> BannedUser:
    return BannedUser(
        id=record.id,
        user_id=record.user_id,
        name=record.user.name if record.user else None,
        email=record.user.email if record.user else None,
        reason=record.reason,
        banned_by=record.banned_by,
        created_at=record.created_at,
    )


def _settings(record: SettingsRecord) -> BlogSettings:
    return BlogSettings(
        title=record.title,
        description=record.description,
        posts_per_page=record.posts_per_page,
        theme=record.theme,
        social_links=record.social_links or {},
        default_author_name=record.default_author_name,
        default_author_email=record.default_author_email,
    )


class SqlContentStore(ContentStore):
    """Content store over a local SQL database (SQLite by default)."""

    name = "sql"

    def __init__(self, database: Database):
        self.db = database

    async def close(self) -> None:
        await self.db.dispose()

    async def check_connection(self) -> bool:
        try:
            async with self.db.session() as session:
                await session.execute(select(SettingsRecord.id).limit(1))
            return True
        except (SQLAlchemyError, RuntimeError) as e:
            logger.warning(f"Database unreachable: {e}")
            return False

    async def init_defaults(self) -> BlogSettings:
        """Insert the default settings row if none exists."""
        async with self.db.session() as session:
            record = (await session.execute(select(SettingsRecord).limit(1))).scalar_one_or_none()
            if record is None:
                defaults = BlogSettings()
                record = SettingsRecord(id="default", **defaults.model_dump())
                session.add(record)
                await session.commit()
            return _settings(record)

    # --- Auth ---

    async def _issue_token(self, session, user_id: str) -> str:
        token = secrets.token_urlsafe(32)
        session.add(AuthTokenRecord(token_hash=hash_token(token), user_id=user_id))
        return token

    async def register(self, email: str, password: str, name: str) -> AuthSession:
        async with self.db.session() as session:
            existing = await session.execute(
                select(UserProfileRecord).where(UserProfileRecord.email == email)
            )
            if existing.scalar_one_or_none():
                raise ConflictError("A user with this email already exists")

            user_count = (await session.execute(select(func.count(UserProfileRecord.id)))).scalar_one()
            user = UserProfileRecord(
                email=email,
                name=name,
                role="ADMIN" if user_count == 0 else "USER",
                password_hash=hash_password(password),
            )
            session.add(user)
            await session.flush()
            token = await self._issue_token(session, user.id)
            await session.commit()
            logger.info(f"Registered user {user.id} ({user.role})")
            return AuthSession(user=_profile(user), access_token=token)

    async def login(self, email: str, password: str) -> AuthSession:
        async with self.db.session() as session:
            result = await session.execute(
                select(UserProfileRecord).where(UserProfileRecord.email == email)
            )
            user = result.scalar_one_or_none()
            if user is None or not verify_password(password, user.password_hash):
                raise AuthError("Invalid login credentials")
            token = await self._issue_token(session, user.id)
            await session.commit()
            return AuthSession(user=_profile(user), access_token=token)

    async def logout(self, token: str) -> None:
        async with self.db.session() as session:
            await session.execute(
                delete(AuthTokenRecord).where(AuthTokenRecord.token_hash == hash_token(token))
            )
            await session.commit()

    async def get_user_for_token(self, token: str) -> Optional[UserProfile]:
        if not token:
            return None
        async with self.db.session() as session:
            result = await session.execute(
                select(UserProfileRecord)
                .join(AuthTokenRecord, AuthTokenRecord.user_id == UserProfileRecord.id)
                .where(AuthTokenRecord.token_hash == hash_token(token))
            )
            user = result.scalar_one_or_none()
            return _profile(user) if user else None

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
        query = select(PostRecord)
        if not include_scheduled:
            query = query.where(PostRecord.published_at <= utc_now())
        if search:
            pattern = f"%{search}%"
            query = query.where(or_(PostRecord.title.ilike(pattern), PostRecord.content.ilike(pattern)))

        async with self.db.session() as session:
            records = (await session.execute(query)).scalars().all()

        # JSON level lists are filtered here so SQLite and Postgres behave alike
        posts = [_post(r) for r in records if level_matches(r.educational_level or [], level)]
        posts = sort_posts(posts, sort_by, sort_order)
        if limit is None:
            return posts[offset:]
        return posts[offset:offset + limit]

    async def _get_post_record(self, session, post_id: str) -> PostRecord:
        record = await session.get(PostRecord, post_id)
        if record is None:
            raise NotFoundError("Post not found")
        return record

    async def get_post(self, post_id: str, include_scheduled: bool = False) -> Post:
        async with self.db.session() as session:
            post = _post(await self._get_post_record(session, post_id))
        if not include_scheduled and is_scheduled(post):
            raise NotFoundError("Post not found")
        return post

    async def create_post(self, author_id: str, data: PostCreate) -> Post:
        async with self.db.session() as session:
            record = PostRecord(
                title=data.title,
                content=data.content,
                cover_image=data.cover_image,
                video_url=data.video_url,
                published_at=to_naive_utc(data.published_at) if data.published_at else utc_now(),
                reading_time=data.estimated_reading_time,
                educational_level=data.educational_level,
                author_id=author_id,
            )
            session.add(record)
            await session.commit()
            post_id = record.id
        logger.info(f"Created post {post_id}")
        return await self.get_post(post_id, include_scheduled=True)

    async def update_post(self, post_id: str, data: PostUpdate) -> Post:
        async with self.db.session() as session:
            record = await self._get_post_record(session, post_id)
            record.title = data.title
            record.content = data.content
            record.cover_image = data.cover_image
            record.video_url = data.video_url
            record.educational_level = data.educational_level
            record.reading_time = data.estimated_reading_time
            if data.published_at:
                record.published_at = to_naive_utc(data.published_at)
            record.updated_at = utc_now()
            await session.commit()
        return await self.get_post(post_id, include_scheduled=True)

    async def delete_post(self, post_id: str) -> bool:
        async with self.db.session() as session:
            record = await self._get_post_record(session, post_id)
            await session.delete(record)
            await session.commit()
        logger.info(f"Deleted post {post_id}")
        return True

    # --- Comments ---

    async def list_comments(self, post_id: str) -> List[Comment]:
        async with self.db.session() as session:
            await self._get_post_record(session, post_id)
            result = await session.execute(
                select(CommentRecord)
                .where(CommentRecord.post_id == post_id)
                .order_by(CommentRecord.created_at.asc())
            )
            return [_comment(c) for c in result.scalars().all()]

    async def get_comment(self, post_id: str, comment_id: str) -> Comment:
        async with self.db.session() as session:
            result = await session.execute(
                select(CommentRecord).where(
                    CommentRecord.id == comment_id,
                    CommentRecord.post_id == post_id,
                )
            )
            record = result.scalar_one_or_none()
            if record is None:
                raise NotFoundError("Comment not found")
            return _comment(record)

    async def add_comment(self, post_id: str, author_id: str, content: str) -> List[Comment]:
        async with self.db.session() as session:
            await self._get_post_record(session, post_id)
            session.add(CommentRecord(post_id=post_id, content=content, author_id=author_id))
            await session.commit()
        return await self.list_comments(post_id)

    async def remove_comment(self, post_id: str, comment_id: str) -> List[Comment]:
        async with self.db.session() as session:
            result = await session.execute(
                delete(CommentRecord).where(
                    CommentRecord.id == comment_id,
                    CommentRecord.post_id == post_id,
                )
            )
            if result.rowcount == 0:
                raise NotFoundError("Comment not found")
            await session.commit()
        return await self.list_comments(post_id)

    # --- Reactions ---

    async def get_reactions(self, post_id: str) -> Dict[str, int]:
        async with self.db.session() as session:
            await self._get_post_record(session, post_id)
            result = await session.execute(
                select(ReactionRecord.type).where(ReactionRecord.post_id == post_id)
            )
            return count_reactions(result.scalars().all())

    async def toggle_reaction(self, post_id: str, user_id: str, reaction_type: str) -> Dict[str, int]:
        if reaction_type not in REACTION_TYPES:
            raise StoreError(f"Unknown reaction type '{reaction_type}'", status=422)
        async with self.db.session() as session:
            await self._get_post_record(session, post_id)
            result = await session.execute(
                select(ReactionRecord).where(
                    ReactionRecord.post_id == post_id,
                    ReactionRecord.user_id == user_id,
                    ReactionRecord.type == reaction_type,
                )
            )
            existing = result.scalar_one_or_none()
            if existing:
                await session.delete(existing)
            else:
                session.add(ReactionRecord(post_id=post_id, user_id=user_id, type=reaction_type))
            await session.commit()
        return await self.get_reactions(post_id)

    # --- Settings ---

    async def get_settings(self) -> BlogSettings:
        try:
            async with self.db.session() as session:
                record = (await session.execute(select(SettingsRecord).limit(1))).scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error fetching settings, using defaults: {e}")
            return BlogSettings()
        if record is None:
            logger.info("Using default settings")
            return BlogSettings()
        return _settings(record)

    async def update_settings(self, settings: BlogSettings) -> BlogSettings:
        values = settings.model_dump()
        async with self.db.session() as session:
            record = (await session.execute(select(SettingsRecord).limit(1))).scalar_one_or_none()
            if record is None:
                record = SettingsRecord(id="default", **values)
                session.add(record)
            else:
                for field, value in values.items():
                    setattr(record, field, value)
                record.updated_at = utc_now()
            await session.commit()
            return _settings(record)

    # --- Dashboard ---

    async def get_recent_activity(self, limit: int = 10) -> List[ActivityEntry]:
        async with self.db.session() as session:
            posts = (await session.execute(
                select(PostRecord).order_by(PostRecord.created_at.desc()).limit(limit)
            )).scalars().all()
            comments = (await session.execute(
                select(CommentRecord).order_by(CommentRecord.created_at.desc()).limit(limit)
            )).scalars().all()

        entries = [
            ActivityEntry(
                timestamp=p.created_at,
                user=p.author.name,
                action="created a new post",
                post=p.title,
            )
            for p in posts
        ] + [
            ActivityEntry(
                timestamp=c.created_at,
                user=c.author.name,
                action="commented on",
                post=c.post.title if c.post else "Unknown Post",
            )
            for c in comments
        ]
        return merge_activity(entries, limit)

    async def get_statistics(self) -> Statistics:
        async with self.db.session() as session:
            levels = (await session.execute(select(PostRecord.educational_level))).scalars().all()
            total_comments = (await session.execute(select(func.count(CommentRecord.id)))).scalar_one()
            total_users = (await session.execute(select(func.count(UserProfileRecord.id)))).scalar_one()
        return Statistics(
            total_posts=len(levels),
            total_comments=total_comments,
            total_users=total_users,
            posts_by_level=level_statistics(levels),
        )

    # --- Users ---

    async def list_users(self) -> List[UserProfile]:
        async with self.db.session() as session:
            result = await session.execute(
                select(UserProfileRecord).order_by(UserProfileRecord.created_at.asc())
            )
            return [_profile(u) for u in result.scalars().all()]

    async def update_user_role(self, user_id: str, role: str) -> List[UserProfile]:
        async with self.db.session() as session:
            user = await session.get(UserProfileRecord, user_id)
            if user is None:
                raise NotFoundError("User not found")
            user.role = role
            await session.commit()
        logger.info(f"Changed role of user {user_id} to {role}")
        return await self.list_users()

    async def ban_user(self, user_id: str, reason: str, banned_by: str) -> BannedUser:
        async with self.db.session() as session:
            if await session.get(UserProfileRecord, user_id) is None:
                raise NotFoundError("User not found")
            existing = await session.execute(
                select(BannedUserRecord).where(BannedUserRecord.user_id == user_id)
            )
            if existing.scalar_one_or_none():
                raise ConflictError("User is already banned")
            record = BannedUserRecord(user_id=user_id, reason=reason, banned_by=banned_by)
            session.add(record)
            await session.commit()
            await session.refresh(record, attribute_names=["user"])
            logger.info(f"User {user_id} banned by {banned_by}")
            return _banned(record)

    async def unban_user(self, user_id: str) -> bool:
        async with self.db.session() as session:
            result = await session.execute(
                delete(BannedUserRecord).where(BannedUserRecord.user_id == user_id)
            )
            await session.commit()
            return result.rowcount > 0

    async def get_banned_users(self) -> List[BannedUser]:
        async with self.db.session() as session:
            result = await session.execute(
                select(BannedUserRecord).order_by(BannedUserRecord.created_at.desc())
            )
            return [_banned(b) for b in result.scalars().all()]

    async def is_banned(self, user_id: str) -> bool:
        async with self.db.session() as session:
            result = await session.execute(
                select(BannedUserRecord.id).where(BannedUserRecord.user_id == user_id)
            )
            return result.scalar_one_or_none() is not None
