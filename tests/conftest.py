import asyncio
import json
import os
import sys

import httpx
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from wattpad import WattpadClient  # noqa: E402


def default_storytext(part_id, cookie):
    return json.dumps([{"id": part_id, "text": f"<p>Body {part_id}</p>"}])


class FakeWattpad:
    """In-memory stand-in for the handful of wattpad.com endpoints the client touches."""

    def __init__(self, storytext=default_storytext, cookies=("wp_id=abc123",),
                 handshake_status=200, handshake_delay=0.0, story=None, story_status=200,
                 story_page=""):
        self.storytext = storytext
        self.cookies = list(cookies)
        self.handshake_status = handshake_status
        self.handshake_delay = handshake_delay
        self.story = story
        self.story_status = story_status
        self.story_page = story_page
        self.calls = {"handshake": 0, "storytext": 0, "story": 0, "page": 0}
        self.cookies_seen = []

    async def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/":
            self.calls["handshake"] += 1
            if self.handshake_delay:
                await asyncio.sleep(self.handshake_delay)
            headers = [("set-cookie", f"{c}; Path=/; Domain=.wattpad.com") for c in self.cookies]
            return httpx.Response(self.handshake_status, headers=headers, text="<html></html>")
        if path == "/apiv2/storytext":
            self.calls["storytext"] += 1
            cookie = request.headers.get("cookie")
            self.cookies_seen.append(cookie)
            result = self.storytext(request.url.params.get("id"), cookie)
            if asyncio.iscoroutine(result):
                result = await result
            if isinstance(result, httpx.Response):
                return result
            return httpx.Response(200, text=result)
        if path.startswith("/api/v3/stories/"):
            self.calls["story"] += 1
            if self.story_status != 200:
                return httpx.Response(self.story_status, text="error")
            body = self.story if isinstance(self.story, str) else json.dumps(self.story or {})
            return httpx.Response(200, text=body)
        if path.startswith("/story/"):
            self.calls["page"] += 1
            return httpx.Response(200, text=self.story_page)
        return httpx.Response(404, text="not found")

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def client(self, **kw) -> WattpadClient:
        kw.setdefault("backoff", 0)
        return WattpadClient(transport=self.transport(), **kw)


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def fake():
    return FakeWattpad()


@pytest.fixture
def story_json():
    return {
        "id": "123456",
        "title": "My Story",
        "user": {"name": "writer"},
        "description": "<p>A tale.</p>",
        "cover": "https://img.wattpad.com/cover/123456.jpg",
        "completed": True,
        "numParts": 3,
        "readCount": 1500,
        "voteCount": 42,
        "parts": [
            {"id": 1, "title": "One", "length": 100},
            {"id": 2, "title": "Two", "length": 200},
            {"id": 3, "title": "Three"},
        ],
    }
