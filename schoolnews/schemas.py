from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime
from typing import Dict, List, Literal, Optional
import base64
import binascii
import math
import re

EDUCATIONAL_LEVELS = {
    # National section
    "NATIONAL": {
        "KINDERGARTEN": ["KG1", "KG2"],
        "PRIMARY": ["Primary 1", "Primary 2", "Primary 3", "Primary 4", "Primary 5", "Primary 6"],
        "PREPARATORY": ["Preparatory 1", "Preparatory 2", "Preparatory 3"],
        "SECONDARY": ["Secondary 1", "Secondary 2", "Secondary 3"],
    },
    # American section
    "AMERICAN": {
        "ELEMENTARY": ["Grade 1", "Grade 2", "Grade 3", "Grade 4", "Grade 5"],
        "MIDDLE": ["Grade 6", "Grade 7", "Grade 8"],
        "HIGH": ["Grade 9", "Grade 10", "Grade 11", "Grade 12"],
    },
    "ALL": ["All School"],
}

ALL_SCHOOL = "All School"

ALL_LEVELS = [
    level
    for section in (EDUCATIONAL_LEVELS["NATIONAL"], EDUCATIONAL_LEVELS["AMERICAN"])
    for levels in section.values()
    for level in levels
] + EDUCATIONAL_LEVELS["ALL"]

IMAGE_PREFIXES = ("data:image/jpeg", "data:image/png", "data:image/gif")
MAX_IMAGE_BYTES = 5 * 1024 * 1024
MAX_COMMENT_LENGTH = 1000
WORDS_PER_MINUTE = 200

Role = Literal["ADMIN", "USER"]
ReactionType = Literal["like", "love", "laugh"]
REACTION_TYPES = ("like", "love", "laugh")

_TAG_RE = re.compile(r"<[^>]+>")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def reading_time(content: str) -> int:
    """Estimated minutes to read ``content`` (markup ignored), at least 1."""
    words = _TAG_RE.sub(" ", content or "").split()
    return max(1, math.ceil(len(words) / WORDS_PER_MINUTE))


def validate_image_data_url(value: str) -> str:
    """Accept base64 JPEG, PNG or GIF data URLs up to 5MB."""
    if not value or not value.startswith(IMAGE_PREFIXES):
        raise ValueError("Invalid image format")
    header, _, payload = value.partition(",")
    if ";base64" not in header or not payload:
        raise ValueError("Invalid image format")
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise ValueError("Invalid image format")
    if len(data) > MAX_IMAGE_BYTES:
        raise ValueError("Image size must be less than 5MB")
    return value


class Author(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str


class UserProfile(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: str
    role: Role = "USER"
    created_at: Optional[datetime] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "ADMIN"


class Comment(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    post_id: str
    content: str  # Stored sanitized markup
    created_at: datetime
    author: Author
    content_html: Optional[str] = None


class Post(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    content: str
    cover_image: str
    video_url: Optional[str] = None
    published_at: datetime
    reading_time: int = 5
    educational_level: List[str]
    author: Author
    comments: List[Comment] = []
    reactions: Dict[str, int] = {}
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PostCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    content: str = Field(min_length=1)
    cover_image: str
    educational_level: List[str] = Field(min_length=1)
    published_at: Optional[datetime] = None  # Future timestamp schedules the post
    video_url: Optional[str] = None

    @field_validator("title", "content")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()

    @field_validator("cover_image")
    @classmethod
    def check_cover_image(cls, value: str) -> str:
        return validate_image_data_url(value)

    @field_validator("educational_level")
    @classmethod
    def check_levels(cls, value: List[str]) -> List[str]:
        unknown = [level for level in value if level not in ALL_LEVELS]
        if unknown:
            raise ValueError(f"Unknown educational level(s): {', '.join(unknown)}")
        # Keep order, drop duplicates
        return list(dict.fromkeys(value))

    @property
    def estimated_reading_time(self) -> int:
        return reading_time(self.content)


class PostUpdate(PostCreate):
    pass


class CommentCreate(BaseModel):
    content: str

    @field_validator("content")
    @classmethod
    def check_content(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Comment cannot be empty")
        if len(value) > MAX_COMMENT_LENGTH:
            raise ValueError(f"Comment is too long (maximum {MAX_COMMENT_LENGTH} characters)")
        return value


class ReactionToggle(BaseModel):
    type: ReactionType


class SocialLinks(BaseModel):
    twitter: str = ""
    github: str = ""
    linkedin: str = ""


class BlogSettings(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    title: str = "St.Josef News"
    description: str = "Latest news and updates from St.Josef International School"
    posts_per_page: int = Field(default=9, ge=1, le=100)
    theme: Literal["dark", "light"] = "dark"
    social_links: SocialLinks = SocialLinks()
    default_author_name: str = "Admin"
    default_author_email: str = "admin@stjosefschool.com"


class BannedUser(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    name: Optional[str] = None
    email: Optional[str] = None
    reason: str
    banned_by: str
    created_at: datetime


class BanRequest(BaseModel):
    reason: str

    @field_validator("reason")
    @classmethod
    def reason_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("A ban reason is required")
        return value


class RoleUpdate(BaseModel):
    role: Role


class ActivityEntry(BaseModel):
    timestamp: datetime
    user: str
    action: Literal["created a new post", "commented on"]
    post: str


class Statistics(BaseModel):
    total_posts: int = 0
    total_comments: int = 0
    total_users: int = 0
    posts_by_level: Dict[str, int] = {}


class RegisterRequest(BaseModel):
    email: str
    password: str = Field(min_length=6)
    name: str = Field(min_length=1, max_length=100)

    @field_validator("email")
    @classmethod
    def check_email(cls, value: str) -> str:
        value = value.strip().lower()
        if not _EMAIL_RE.match(value):
            raise ValueError("Invalid email address")
        return value


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class AuthSession(BaseModel):
    user: UserProfile
    access_token: str


class PostPage(BaseModel):
    items: List[Post]
    page: int
    per_page: int
    has_more: bool
