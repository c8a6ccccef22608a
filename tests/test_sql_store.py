import pytest
from datetime import datetime, timedelta, timezone

from schoolnews.errors import AuthError, ConflictError, NotFoundError
from schoolnews.schemas import BlogSettings, PostCreate, PostUpdate, SocialLinks
from schoolnews.services.sql_store import hash_password, verify_password
from tests.helpers import post_payload


async def _admin(store):
    session = await store.register("admin@stjosefschool.com", "secret123", "Admin")
    return session.user


async def _post(store, author_id, **overrides):
    return await store.create_post(author_id, PostCreate(**post_payload(**overrides)))


def test_password_hashing():
    stored = hash_password("secret123")
    assert stored.startswith("$2b$")
    assert verify_password("secret123", stored)
    assert not verify_password("wrong", stored)
    assert stored != hash_password("secret123")


def test_password_hashing_long_password():
    """Passwords past 72 bytes hash instead of raising"""
    password = "ü" * 60
    stored = hash_password(password)
    assert verify_password(password, stored)


def test_verify_password_rejects_malformed_hash():
    assert not verify_password("secret123", "garbage")
    assert not verify_password("secret123", "pbkdf2_sha256$x$salt$abc")


@pytest.mark.asyncio
async def test_first_user_is_admin(store):
    """The first registered account gets the ADMIN role"""
    admin = await _admin(store)
    second = await store.register("student@example.com", "secret123", "Student")

    assert admin.role == "ADMIN"
    assert second.user.role == "USER"


@pytest.mark.asyncio
async def test_register_duplicate_email(store):
    await _admin(store)
    with pytest.raises(ConflictError):
        await store.register("admin@stjosefschool.com", "other123", "Someone")


@pytest.mark.asyncio
async def test_login_and_logout(store):
    await _admin(store)

    with pytest.raises(AuthError):
        await store.login("admin@stjosefschool.com", "wrong-password")

    session = await store.login("admin@stjosefschool.com", "secret123")
    user = await store.get_user_for_token(session.access_token)
    assert user.email == "admin@stjosefschool.com"

    await store.logout(session.access_token)
    assert await store.get_user_for_token(session.access_token) is None
    assert await store.get_user_for_token("") is None


@pytest.mark.asyncio
async def test_create_and_get_post(store):
    admin = await _admin(store)
    post = await _post(store, admin.id, content="word " * 450)

    assert post.reading_time == 3
    assert post.author.name == "Admin"
    assert post.reactions == {"like": 0, "love": 0, "laugh": 0}

    fetched = await store.get_post(post.id)
    assert fetched.title == "Science Fair Winners"

    with pytest.raises(NotFoundError):
        await store.get_post("missing")


@pytest.mark.asyncio
async def test_scheduled_posts_are_hidden(store):
    """Posts with a future publish time only show up for admins"""
    admin = await _admin(store)
    future = datetime.now(timezone.utc) + timedelta(days=2)
    scheduled = await _post(store, admin.id, title="Sports Day", published_at=future.isoformat())
    await _post(store, admin.id, title="Open Day")

    visible = await store.list_posts()
    assert [p.title for p in visible] == ["Open Day"]

    everything = await store.list_posts(include_scheduled=True)
    assert {p.title for p in everything} == {"Sports Day", "Open Day"}

    with pytest.raises(NotFoundError):
        await store.get_post(scheduled.id)
    assert (await store.get_post(scheduled.id, include_scheduled=True)).title == "Sports Day"


@pytest.mark.asyncio
async def test_list_posts_filters(store):
    admin = await _admin(store)
    await _post(store, admin.id, title="KG Party", educational_level=["KG1"])
    await _post(store, admin.id, title="Robotics Club", content="<p>Build robots</p>", educational_level=["Grade 9"])
    await _post(store, admin.id, title="Assembly", educational_level=["All School"])

    assert [p.title for p in await store.list_posts(level="KG1")] == ["KG Party"]
    assert len(await store.list_posts(level="All School")) == 3
    assert [p.title for p in await store.list_posts(search="robots")] == ["Robotics Club"]
    assert len(await store.list_posts(limit=2)) == 2
    assert len(await store.list_posts(limit=2, offset=2)) == 1

    with pytest.raises(ValueError):
        await store.list_posts(sort_by="title")


@pytest.mark.asyncio
async def test_sort_by_comments(store):
    admin = await _admin(store)
    quiet = await _post(store, admin.id, title="Quiet")
    busy = await _post(store, admin.id, title="Busy")
    await store.add_comment(busy.id, admin.id, "First")
    await store.add_comment(busy.id, admin.id, "Second")

    posts = await store.list_posts(sort_by="comments", sort_order="desc")
    assert [p.id for p in posts] == [busy.id, quiet.id]

    posts = await store.list_posts(sort_by="comments", sort_order="asc")
    assert [p.id for p in posts] == [quiet.id, busy.id]


@pytest.mark.asyncio
async def test_update_and_delete_post(store):
    admin = await _admin(store)
    post = await _post(store, admin.id)

    updated = await store.update_post(post.id, PostUpdate(**post_payload(title="Updated title")))
    assert updated.title == "Updated title"

    await store.add_comment(post.id, admin.id, "Nice")
    assert await store.delete_post(post.id) is True
    with pytest.raises(NotFoundError):
        await store.get_post(post.id)
    with pytest.raises(NotFoundError):
        await store.delete_post(post.id)


@pytest.mark.asyncio
async def test_comments(store):
    admin = await _admin(store)
    post = await _post(store, admin.id)

    comments = await store.add_comment(post.id, admin.id, "<p>Well done!</p>")
    assert len(comments) == 1
    assert comments[0].author.name == "Admin"

    comments = await store.add_comment(post.id, admin.id, "Second")
    assert [c.content for c in comments] == ["<p>Well done!</p>", "Second"]

    comment = await store.get_comment(post.id, comments[0].id)
    assert comment.post_id == post.id

    remaining = await store.remove_comment(post.id, comments[0].id)
    assert [c.content for c in remaining] == ["Second"]

    with pytest.raises(NotFoundError):
        await store.remove_comment(post.id, comments[0].id)
    with pytest.raises(NotFoundError):
        await store.add_comment("missing", admin.id, "Hello")


@pytest.mark.asyncio
async def test_toggle_reaction(store):
    """Reacting twice with the same type removes the reaction"""
    admin = await _admin(store)
    post = await _post(store, admin.id)

    counts = await store.toggle_reaction(post.id, admin.id, "love")
    assert counts == {"like": 0, "love": 1, "laugh": 0}

    counts = await store.toggle_reaction(post.id, admin.id, "like")
    assert counts["like"] == 1

    counts = await store.toggle_reaction(post.id, admin.id, "love")
    assert counts == {"like": 1, "love": 0, "laugh": 0}
    assert (await store.get_post(post.id)).reactions == counts


@pytest.mark.asyncio
async def test_settings(store):
    settings = await store.get_settings()
    assert settings == BlogSettings()

    updated = await store.update_settings(BlogSettings(
        title="St.Josef Weekly",
        posts_per_page=6,
        theme="light",
        social_links=SocialLinks(twitter="https://twitter.com/stjosef"),
    ))
    assert updated.title == "St.Josef Weekly"

    settings = await store.get_settings()
    assert settings.posts_per_page == 6
    assert settings.social_links.twitter == "https://twitter.com/stjosef"


@pytest.mark.asyncio
async def test_ban_and_unban(store):
    admin = await _admin(store)
    student = (await store.register("student@example.com", "secret123", "Student")).user

    banned = await store.ban_user(student.id, "Spam", admin.id)
    assert banned.name == "Student"
    assert banned.reason == "Spam"
    assert await store.is_banned(student.id)

    with pytest.raises(ConflictError):
        await store.ban_user(student.id, "Again", admin.id)
    with pytest.raises(NotFoundError):
        await store.ban_user("missing", "Spam", admin.id)

    assert [b.user_id for b in await store.get_banned_users()] == [student.id]
    assert await store.unban_user(student.id) is True
    assert await store.unban_user(student.id) is False
    assert not await store.is_banned(student.id)


@pytest.mark.asyncio
async def test_roles(store):
    admin = await _admin(store)
    student = (await store.register("student@example.com", "secret123", "Student")).user

    users = await store.update_user_role(student.id, "ADMIN")
    assert {u.email: u.role for u in users} == {
        "admin@stjosefschool.com": "ADMIN",
        "student@example.com": "ADMIN",
    }
    assert admin.id in [u.id for u in users]

    with pytest.raises(NotFoundError):
        await store.update_user_role("missing", "USER")


@pytest.mark.asyncio
async def test_statistics_and_activity(store):
    admin = await _admin(store)
    first = await _post(store, admin.id, title="First", educational_level=["Grade 1", "Grade 2"])
    await _post(store, admin.id, title="Second", educational_level=["Grade 1"])
    await store.add_comment(first.id, admin.id, "Great")

    stats = await store.get_statistics()
    assert stats.total_posts == 2
    assert stats.total_comments == 1
    assert stats.total_users == 1
    assert stats.posts_by_level == {"Grade 1": 2, "Grade 2": 1}

    activity = await store.get_recent_activity(limit=2)
    assert len(activity) == 2
    assert activity[0].action == "commented on"
    assert activity[0].post == "First"
    assert activity[0].user == "Admin"


@pytest.mark.asyncio
async def test_check_connection(store):
    assert await store.check_connection() is True
    await store.close()
    assert await store.check_connection() is False
