import pytest
import pytest_asyncio

from tests.helpers import auth, post_payload


@pytest_asyncio.fixture
async def post_id(client, admin_token):
    response = await client.post("/api/posts", json=post_payload(), headers=auth(admin_token))
    return response.json()["id"]


async def _user_id(client, token):
    return (await client.get("/api/auth/me", headers=auth(token))).json()["id"]


@pytest.mark.asyncio
async def test_add_comment_is_linkified_and_sanitized(client, post_id, user_token):
    """Stored comments only carry allowed markup"""
    response = await client.post(
        f"/api/posts/{post_id}/comments",
        json={"content": "  Visit example.com <script>alert(1)</script>  "},
        headers=auth(user_token),
    )
    assert response.status_code == 201

    comments = response.json()
    assert len(comments) == 1
    expected = 'Visit <a href="http://example.com">example.com</a> alert(1)'
    assert comments[0]["content"] == expected
    assert comments[0]["content_html"] == expected
    assert comments[0]["author"]["name"] == "Student"

    listed = (await client.get(f"/api/posts/{post_id}/comments")).json()
    assert [c["content"] for c in listed] == [expected]


@pytest.mark.asyncio
async def test_add_comment_validation(client, post_id, user_token):
    response = await client.post(f"/api/posts/{post_id}/comments", json={"content": "Hi"})
    assert response.status_code == 401

    response = await client.post(
        f"/api/posts/{post_id}/comments", json={"content": "   "}, headers=auth(user_token)
    )
    assert response.status_code == 422

    response = await client.post(
        f"/api/posts/{post_id}/comments", json={"content": "x" * 1001}, headers=auth(user_token)
    )
    assert response.status_code == 422

    response = await client.post(
        f"/api/posts/{post_id}/comments", json={"content": "<script></script>"}, headers=auth(user_token)
    )
    assert response.status_code == 422
    assert response.json()["detail"] == "Comment cannot be empty"

    response = await client.post(
        "/api/posts/missing/comments", json={"content": "Hello"}, headers=auth(user_token)
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_banned_user_cannot_comment(client, post_id, admin_token, user_token):
    user_id = await _user_id(client, user_token)
    response = await client.post(
        f"/api/admin/users/{user_id}/ban", json={"reason": "Spam"}, headers=auth(admin_token)
    )
    assert response.status_code == 201

    response = await client.post(
        f"/api/posts/{post_id}/comments", json={"content": "Hello"}, headers=auth(user_token)
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_delete_comment_permissions(client, post_id, admin_token, user_token):
    """Only the author or an admin can delete a comment"""
    await client.post(
        f"/api/posts/{post_id}/comments", json={"content": "From admin"}, headers=auth(admin_token)
    )
    comments = (await client.post(
        f"/api/posts/{post_id}/comments", json={"content": "From student"}, headers=auth(user_token)
    )).json()
    admin_comment, student_comment = comments

    response = await client.delete(
        f"/api/posts/{post_id}/comments/{admin_comment['id']}", headers=auth(user_token)
    )
    assert response.status_code == 403

    response = await client.delete(
        f"/api/posts/{post_id}/comments/{student_comment['id']}", headers=auth(user_token)
    )
    assert response.status_code == 200
    assert [c["content"] for c in response.json()] == ["From admin"]

    response = await client.delete(
        f"/api/posts/{post_id}/comments/{admin_comment['id']}", headers=auth(admin_token)
    )
    assert response.json() == []

    response = await client.delete(
        f"/api/posts/{post_id}/comments/{admin_comment['id']}", headers=auth(admin_token)
    )
    assert response.status_code == 404
