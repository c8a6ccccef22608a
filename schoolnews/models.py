from sqlalchemy import Column, String, DateTime, Integer, Text, ForeignKey, UniqueConstraint, JSON
from sqlalchemy.orm import relationship
import uuid

from schoolnews.database import Base
from schoolnews.utils.dates import utc_now


def new_id() -> str:
    return str(uuid.uuid4())


class UserProfileRecord(Base):
    __tablename__ = "user_profiles"

    id = Column(String, primary_key=True, default=new_id)
    email = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=False)
    role = Column(String, nullable=False, default="USER")  # ADMIN | USER
    password_hash = Column(String, nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)


class AuthTokenRecord(Base):
    __tablename__ = "auth_tokens"

    token_hash = Column(String, primary_key=True)  # sha256 of the bearer token
    user_id = Column(String, ForeignKey("user_profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, default=utc_now, nullable=False)


class PostRecord(Base):
    __tablename__ = "posts"

    id = Column(String, primary_key=True, default=new_id)
    title = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    cover_image = Column(Text, nullable=False)
    video_url = Column(String, nullable=True)
    published_at = Column(DateTime, default=utc_now, nullable=False, index=True)
    reading_time = Column(Integer, default=5, nullable=False)
    educational_level = Column(JSON, nullable=False, default=list)
    author_id = Column(String, ForeignKey("user_profiles.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    author = relationship("UserProfileRecord", lazy="selectin")
    comments = relationship(
        "CommentRecord",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="CommentRecord.created_at",
    )
    reactions = relationship("ReactionRecord", lazy="selectin", cascade="all, delete-orphan")


class CommentRecord(Base):
    __tablename__ = "comments"

    id = Column(String, primary_key=True, default=new_id)
    post_id = Column(String, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    author_id = Column(String, ForeignKey("user_profiles.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    author = relationship("UserProfileRecord", lazy="selectin")
    post = relationship("PostRecord", lazy="selectin", viewonly=True)


class ReactionRecord(Base):
    __tablename__ = "reactions"

    id = Column(String, primary_key=True, default=new_id)
    post_id = Column(String, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, ForeignKey("user_profiles.id"), nullable=False, index=True)
    type = Column(String, nullable=False)  # like | love | laugh
    created_at = Column(DateTime, default=utc_now, nullable=False)

    __table_args__ = (
        UniqueConstraint("post_id", "user_id", "type", name="uq_reaction_post_user_type"),
    )


class SettingsRecord(Base):
    __tablename__ = "settings"

    id = Column(String, primary_key=True, default="default")
    title = Column(String, nullable=False)
    description = Column(String, nullable=False)
    posts_per_page = Column(Integer, nullable=False)
    theme = Column(String, nullable=False)
    social_links = Column(JSON, nullable=False)
    default_author_name = Column(String, nullable=False)
    default_author_email = Column(String, nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)


class BannedUserRecord(Base):
    __tablename__ = "banned_users"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, ForeignKey("user_profiles.id", ondelete="CASCADE"), unique=True, nullable=False, index=True)
    reason = Column(Text, nullable=False)
    banned_by = Column(String, ForeignKey("user_profiles.id"), nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)

    user = relationship("UserProfileRecord", lazy="selectin", foreign_keys=[user_id])
