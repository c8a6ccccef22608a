import base64

PNG_DATA_URL = "data:image/png;base64," + base64.b64encode(b"\x89PNG\r\n\x1a\n" + b"\x00" * 16).decode()


def post_payload(**overrides):
    payload = {
        "title": "Science Fair Winners",
        "content": "<p>Congratulations to all participants in this year's science fair.</p>",
        "cover_image": PNG_DATA_URL,
        "educational_level": ["Grade 5"],
    }
    payload.update(overrides)
    return payload


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
