import argparse
import asyncio
import enum
import json
import os
import random
import re
import sys
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx
from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PreformattedString
from slugify import slugify

# ----------------------------
# Constants & Helpers
# ----------------------------

BASE_URL = "https://www.wattpad.com"
STORYTEXT_URL = f"{BASE_URL}/apiv2/storytext"
STORY_API = f"{BASE_URL}/api/v3/stories"
STORY_FIELDS = (
    "id,title,user(name),description,cover,completed,numParts,"
    "readCount,voteCount,parts(id,title,length)"
)
HTTP_LOG = False

# storytext answers with this literal (padding aside) when the request carries no visitor session
DENIAL_SENTINEL = "Array"
NO_CONTENT = "[No content]"
UNAVAILABLE_PREFIX = "[Content unavailable"

SESSION_TIMEOUT = 5.0
CONTENT_TIMEOUT = 6.0
MAX_RETRIES = 2
BACKOFF = 1.25
BATCH_SIZE = 12
THROTTLE = 0.2

BASE_HEADERS = {
    "user-agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/122.0.0.0 Safari/537.36"
    ),
    "accept-language": "en-US,en;q=0.9",
    "referer": f"{BASE_URL}/",
}


class WattpadError(Exception):
    pass


class SessionAcquisitionFailure(WattpadError):
    pass


class AccessDenied(WattpadError):
    pass


class TransportFailure(WattpadError):
    pass


class ContentUnavailable(WattpadError):
    pass


class MalformedPayload(WattpadError, ValueError):
    pass


class StoryNotFound(WattpadError):
    pass


def placeholder(reason: str) -> str:
    return f"{UNAVAILABLE_PREFIX}: {reason}]"


def is_placeholder(body: str) -> bool:
    return body == NO_CONTENT or body.startswith(UNAVAILABLE_PREFIX)


def mask_cookie(credential: str) -> str:
    if not credential:
        return "<none>"
    out = []
    for pair in credential.split(";"):
        name, _, value = pair.strip().partition("=")
        out.append(f"{name}={value[:4]}…" if len(value) > 8 else f"{name}=***")
    return "; ".join(out)


def _describe(exc: Exception) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        return f"HTTP {exc.response.status_code}"
    return str(exc) or type(exc).__name__


# ----------------------------
# Data
# ----------------------------

@dataclass(frozen=True)
class ChapterDescriptor:
    index: int
    id: str
    title: str
    length: Optional[int] = None


@dataclass(frozen=True)
class NormalizedChapter:
    title: str
    body: str

    def __post_init__(self):
        # layout must never silently drop a section
        if not (self.body or "").strip():
            object.__setattr__(self, "body", NO_CONTENT)


@dataclass(frozen=True)
class StoryBundle:
    title: str
    author: str = "Unknown"
    description: Optional[str] = None
    chapters: Tuple[NormalizedChapter, ...] = ()
    source_url: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "chapters", tuple(self.chapters))


@dataclass
class StoryInfo:
    id: str
    url: str
    title: str = "Untitled"
    author: str = "Unknown"
    description: Optional[str] = None
    cover: Optional[str] = None
    completed: bool = False
    num_parts: int = 0
    views: int = 0
    votes: int = 0
    chapters: List[ChapterDescriptor] = field(default_factory=list)

    def to_json(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "title": self.title,
            "author": self.author,
            "description": self.description,
            "cover": self.cover,
            "completed": self.completed,
            "numParts": self.num_parts,
            "views": self.views,
            "votes": self.votes,
            "chapters": [
                {"index": c.index, "id": c.id, "title": c.title, "length": c.length}
                for c in self.chapters
            ],
        }


# ----------------------------
# Text normalization
# ----------------------------

# Probed in order; the longest string field is the fallback when upstream renames them.
CONTENT_FIELDS = ("text", "content", "body", "paragraph")

BLOCK_TAGS = frozenset({
    "p", "div", "h1", "h2", "h3", "h4", "h5", "h6", "li", "ul", "ol",
    "blockquote", "section", "article", "header", "footer", "aside",
    "pre", "table", "tr", "hr", "figure", "figcaption", "dl", "dt", "dd",
})
SKIP_TAGS = frozenset({"script", "style", "noscript", "template", "head"})

_BR = object()
_OPEN = object()
_CLOSE = object()


def _walk(node, events: list):
    for child in node.children:
        if isinstance(child, Tag):
            name = (child.name or "").lower()
            if name in SKIP_TAGS:
                continue
            if name == "br":
                events.append(_BR)
            elif name in BLOCK_TAGS:
                events.append(_OPEN)
                _walk(child, events)
                events.append(_CLOSE)
            else:
                _walk(child, events)
        elif isinstance(child, NavigableString) and not isinstance(child, PreformattedString):
            events.append(str(child))


def _tidy(text: str) -> str:
    text = text.replace("\r\n", "\n").replace("\r", "\n").replace("\u00a0", " ")
    text = re.sub(r"[ \t]{2,}", " ", text)
    text = re.sub(r"[ \t]*\n[ \t]*", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def html_to_text(fragment: Optional[str]) -> str:
    """Strip markup from one fragment.

    ``<br>`` and block boundaries end the current line. Sibling blocks that
    both carry text, or two ``<br>`` in a row, give a blank line; any other
    run of boundaries collapses into a single newline, so
    ``<p>Hello</p><br>World`` becomes ``Hello\\nWorld``.
    """
    if not fragment:
        return ""
    soup = BeautifulSoup(str(fragment), "html.parser")
    has_markup = soup.find() is not None
    events: list = []
    _walk(soup, events)

    out: List[str] = []
    buf: List[str] = []
    breaks, closed, gap = 0, False, False

    def flush():
        nonlocal breaks, closed, gap
        text = "".join(buf).strip()
        buf.clear()
        if not text:
            return
        if out:
            out.append("\n\n" if (breaks >= 2 or gap) else "\n")
        out.append(text)
        breaks, closed, gap = 0, False, False

    for ev in events:
        if ev is _BR:
            flush()
            breaks += 1
        elif ev is _OPEN:
            flush()
            gap = gap or closed
        elif ev is _CLOSE:
            flush()
            closed = True
        else:
            buf.append(re.sub(r"\s+", " ", ev) if has_markup else ev)
    flush()
    return _tidy("".join(out))


def _pick_fragment(record: Dict[str, Any]) -> str:
    for key in CONTENT_FIELDS:
        v = record.get(key)
        if isinstance(v, str) and v.strip():
            return v
    longest = ""
    for v in record.values():
        if isinstance(v, str) and len(v) > len(longest):
            longest = v
    return longest


def _decode_json(raw: str):
    s = raw.strip()
    if not s.startswith(("[", "{")):
        raise MalformedPayload("not a JSON array or object")
    try:
        data = json.loads(s)
    except ValueError as e:
        raise MalformedPayload(str(e)) from e
    if not isinstance(data, (list, dict)):
        raise MalformedPayload(f"unexpected JSON type {type(data).__name__}")
    return data


def parse_payload(raw: str):
    """Structural probe: JSON array, JSON object, else the raw markup unchanged."""
    try:
        return _decode_json(raw)
    except MalformedPayload:
        return raw


def _normalize(payload) -> str:
    if isinstance(payload, (list, tuple)):
        parts = []
        for item in payload:
            if isinstance(item, str):
                frag = item
            elif isinstance(item, dict):
                frag = _pick_fragment(item)
            else:
                continue
            text = html_to_text(frag)
            if text:
                parts.append(text)
        return _tidy("\n\n".join(parts))
    if isinstance(payload, dict):
        return html_to_text(_pick_fragment(payload))
    if isinstance(payload, (bytes, bytearray)):
        payload = bytes(payload).decode("utf-8", "replace")
    if payload is None:
        return ""
    if not isinstance(payload, str):
        return html_to_text(str(payload))
    parsed = parse_payload(payload)
    if isinstance(parsed, (list, dict)):
        return _normalize(parsed)
    return html_to_text(parsed)


def normalize(payload) -> str:
    """Turn a storytext payload (records, one record, or markup) into plain text.

    Never raises; the worst case is an empty string.
    """
    try:
        return _normalize(payload)
    except Exception as e:
        print(f"[warn] normalize failed: {e}")
        return ""


# ----------------------------
# Session
# ----------------------------

class SessionState(enum.Enum):
    ABSENT = "absent"
    ACQUIRING = "acquiring"
    VALID = "valid"


class SessionManager:
    """Owns the anonymous visitor cookie that storytext requests must carry.

    ``acquire`` is lazy: a valid credential is returned without touching the
    network, and concurrent callers while absent share one handshake.
    """

    def __init__(self, http: httpx.AsyncClient, url: str = f"{BASE_URL}/",
                 timeout: float = SESSION_TIMEOUT):
        self._http = http
        self.url = url
        self.timeout = timeout
        self._state = SessionState.ABSENT
        self._credential = ""
        self._pending: Optional[asyncio.Future] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def credential(self) -> str:
        return self._credential

    async def acquire(self) -> str:
        if self._state is SessionState.VALID:
            return self._credential
        if self._pending is None:
            self._state = SessionState.ACQUIRING
            self._pending = asyncio.ensure_future(self._acquire_once())
        return await asyncio.shield(self._pending)

    def invalidate(self, credential: Optional[str] = None) -> None:
        if self._state is not SessionState.VALID:
            return
        if credential is not None and credential != self._credential:
            # a sibling fetch already refreshed it
            return
        self._credential = ""
        self._state = SessionState.ABSENT
        print("[session] visitor session invalidated")

    async def _acquire_once(self) -> str:
        try:
            credential = await self._handshake()
        except SessionAcquisitionFailure as e:
            print(f"[session] acquisition failed: {e}")
            credential = ""
        finally:
            self._pending = None
        self._credential = credential
        self._state = SessionState.VALID if credential else SessionState.ABSENT
        return credential

    async def _handshake(self) -> str:
        print("[session] refreshing Wattpad visitor session…")
        try:
            r = await self._http.get(self.url, headers=BASE_HEADERS, timeout=self.timeout)
            r.raise_for_status()
        except httpx.HTTPError as e:
            raise SessionAcquisitionFailure(_describe(e)) from e

        pairs: List[str] = []
        for resp in [*r.history, r]:
            for raw in resp.headers.get_list("set-cookie"):
                pair = raw.split(";", 1)[0].strip()
                if "=" in pair and pair not in pairs:
                    pairs.append(pair)
        # the credential is the only cookie state content requests may carry
        self._http.cookies.clear()
        if not pairs:
            raise SessionAcquisitionFailure("handshake returned no cookies")
        credential = "; ".join(pairs)
        print(f"[session] acquired {len(pairs)} cookies")
        if HTTP_LOG:
            print(f"[session]    cookie: {mask_cookie(credential)}")
        return credential


# ----------------------------
# API Client
# ----------------------------

def extract_story_id(url: str) -> Optional[str]:
    for pattern in (r"story/(\d+)", r"-(\d+)(?:-|$)", r"(\d+)"):
        m = re.search(pattern, url or "")
        if m:
            return m.group(1)
    return None


def parse_legacy_parts(raw: str) -> List[ChapterDescriptor]:
    """Chapter list from the PHP ``print_r`` style body the API sometimes returns."""
    ids = re.findall(r"'id'\s*=>\s*(\d+)", raw or "")
    titles = re.findall(r"'title'\s*=>\s*'(.*?)'", raw or "")
    return [
        ChapterDescriptor(index=i, id=pid, title=(titles[i - 1] if i - 1 < len(titles) else f"Chapter {i}"))
        for i, pid in enumerate(ids, 1)
    ]


def _as_int(v, default: int = 0) -> int:
    try:
        return int(v)
    except (TypeError, ValueError):
        return default


class WattpadClient:
    def __init__(self, timeout: float = CONTENT_TIMEOUT, max_retries: int = MAX_RETRIES,
                 backoff: float = BACKOFF, batch_size: int = BATCH_SIZE,
                 throttle: float = THROTTLE, proxy: Optional[str] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        kwargs: Dict[str, Any] = {
            "headers": BASE_HEADERS,
            "timeout": timeout,
            "follow_redirects": True,
        }
        if proxy:
            kwargs["proxy"] = proxy
        if transport is not None:
            kwargs["transport"] = transport
        self._http = httpx.AsyncClient(**kwargs)
        self.timeout = timeout
        self.max_retries = max(0, int(max_retries))
        self.backoff = backoff
        self.batch_size = max(1, int(batch_size))
        # delay seconds between sequential chapter fetches
        self.throttle = max(0.0, float(throttle or 0.0))
        self.session = SessionManager(self._http)

    async def close(self):
        await self._http.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.close()

    async def acquire_session(self) -> str:
        return await self.session.acquire()

    def invalidate_session(self) -> None:
        self.session.invalidate()

    # ---- chapter content ----

    async def _request_storytext(self, part_id: str, credential: str) -> str:
        headers = {"accept": "application/json, text/html, */*"}
        if credential:
            headers["cookie"] = credential
        if HTTP_LOG:
            print(f"[fetch] -> GET storytext?id={part_id} cookie={mask_cookie(credential)}")
        r = await self._http.get(STORYTEXT_URL, params={"id": part_id},
                                 headers=headers, timeout=self.timeout)
        if HTTP_LOG:
            t = r.text
            print(f"[fetch] <- {r.status_code} {len(t)} chars: {t[:120]!r}")
        r.raise_for_status()
        # raw text on purpose: the denial sentinel is checked before any parsing
        return r.text

    async def _fetch_text(self, part_id: str) -> str:
        attempts = self.max_retries + 1
        last: Optional[WattpadError] = None
        for attempt in range(1, attempts + 1):
            credential = await self.session.acquire()
            try:
                raw = await self._request_storytext(part_id, credential)
            except httpx.HTTPError as e:
                last = TransportFailure(_describe(e))
                print(f"[fetch] part {part_id} attempt {attempt}/{attempts} failed: {last}")
                if attempt < attempts:
                    await asyncio.sleep(self.backoff ** attempt)
                continue

            if raw.strip() == DENIAL_SENTINEL:
                # fetch side effect: a denial drops the shared session
                self.session.invalidate(credential)
                last = AccessDenied("access denied, no session")
                print(f"[fetch] part {part_id} attempt {attempt}/{attempts}: denied")
                continue

            return normalize(parse_payload(raw)) or NO_CONTENT
        raise ContentUnavailable(str(last) if last else "unknown error")

    async def fetch_chapter_text(self, part_id: str) -> str:
        """Chapter body as plain text; failures come back as a placeholder string."""
        part_id = str(part_id)
        try:
            return await self._fetch_text(part_id)
        except ContentUnavailable as e:
            print(f"[warn] part {part_id} unavailable: {e}")
            return placeholder(str(e))
        except Exception as e:
            print(f"[warn] part {part_id} failed unexpectedly: {e}")
            return placeholder(_describe(e))

    async def fetch_chapter(self, part_id: str, title: Optional[str] = None) -> NormalizedChapter:
        body = await self.fetch_chapter_text(part_id)
        return NormalizedChapter(title=title or f"Part {part_id}", body=body)

    # ---- batches ----

    async def fetch_all(self, chapters: Sequence[ChapterDescriptor], *, sequential: bool = False,
                        batch_size: Optional[int] = None, delay: Optional[float] = None,
                        deadline: Optional[float] = None) -> List[NormalizedChapter]:
        """Fetch every chapter, keeping input order and length.

        ``deadline`` is a wall-clock ceiling in seconds for the whole batch;
        chapters still running when it passes become placeholders.
        """
        chapters = list(chapters)
        results: List[Optional[NormalizedChapter]] = [None] * len(chapters)
        if not chapters:
            return []
        loop = asyncio.get_running_loop()
        stop_at = loop.time() + deadline if deadline is not None else None

        if sequential:
            pause = self.throttle if delay is None else max(0.0, delay)
            await self._run_sequential(chapters, results, pause, stop_at)
        else:
            await self._run_batches(chapters, results, batch_size or self.batch_size, stop_at)

        missing = sum(1 for r in results if r is None)
        if missing:
            print(f"[warn] time limit reached; {missing} chapter(s) left as placeholders")
        return [
            r if r is not None else NormalizedChapter(
                title=ch.title or f"Chapter {ch.index}", body=placeholder("time limit reached"))
            for ch, r in zip(chapters, results)
        ]

    async def _run_batches(self, chapters, results, batch_size, stop_at):
        loop = asyncio.get_running_loop()
        size = max(1, int(batch_size))
        total = len(chapters)
        for start in range(0, total, size):
            group = chapters[start:start + size]
            remaining = None
            if stop_at is not None:
                remaining = stop_at - loop.time()
                if remaining <= 0:
                    break
            tasks = [asyncio.ensure_future(self.fetch_chapter(ch.id, ch.title)) for ch in group]
            done, pending = await asyncio.wait(tasks, timeout=remaining)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
            for offset, task in enumerate(tasks):
                if task in done and not task.cancelled() and task.exception() is None:
                    results[start + offset] = task.result()
            print(f"[batch] {min(start + size, total)}/{total} chapters")
            if pending:
                break

    async def _run_sequential(self, chapters, results, pause, stop_at):
        loop = asyncio.get_running_loop()
        total = len(chapters)
        for i, ch in enumerate(chapters):
            if stop_at is None:
                results[i] = await self.fetch_chapter(ch.id, ch.title)
            else:
                remaining = stop_at - loop.time()
                if remaining <= 0:
                    break
                try:
                    results[i] = await asyncio.wait_for(self.fetch_chapter(ch.id, ch.title), remaining)
                except asyncio.TimeoutError:
                    break
            print(f"[batch] {i + 1}/{total} {ch.title}")
            if pause and i < total - 1:
                wait = pause + random.uniform(0.05, 0.25)
                if stop_at is not None:
                    wait = min(wait, max(0.0, stop_at - loop.time()))
                await asyncio.sleep(wait)

    # ---- story metadata ----

    async def fetch_story(self, url: str) -> StoryInfo:
        story_id = extract_story_id(url)
        if not story_id:
            raise StoryNotFound(f"could not find a valid story id in {url!r}")
        print(f"[stage] fetching story {story_id} metadata…")
        try:
            r = await self._http.get(f"{STORY_API}/{story_id}", params={"fields": STORY_FIELDS},
                                     timeout=self.timeout)
            r.raise_for_status()
        except httpx.HTTPError as e:
            raise WattpadError(f"story metadata request failed: {_describe(e)}") from e

        raw = r.text
        page_url = url if url.startswith("http") else f"{BASE_URL}/story/{story_id}"
        info = StoryInfo(id=story_id, url=page_url)
        data = parse_payload(raw)
        if isinstance(data, dict) and data.get("id"):
            self._apply_v3(info, data)
        else:
            print("[warn] story v3 JSON parse failed, trying legacy parsing…")

        if not info.chapters:
            info.chapters = parse_legacy_parts(raw)
            if info.chapters:
                print(f"[info] extracted {len(info.chapters)} chapters via legacy fallback")

        if info.title == "Untitled" or not info.cover:
            await self._scrape_story_page(info)

        info.num_parts = info.num_parts or len(info.chapters)
        print(f"[meta] title={info.title!r} author={info.author!r} chapters={len(info.chapters)}")
        return info

    @staticmethod
    def _apply_v3(info: StoryInfo, data: Dict[str, Any]) -> None:
        user = data.get("user") if isinstance(data.get("user"), dict) else {}
        info.title = data.get("title") or info.title
        info.author = user.get("name") or info.author
        info.description = data.get("description") or None
        info.cover = data.get("cover") or None
        info.completed = bool(data.get("completed"))
        info.num_parts = _as_int(data.get("numParts"))
        info.views = _as_int(data.get("readCount"))
        info.votes = _as_int(data.get("voteCount"))
        chapters = []
        for i, p in enumerate(data.get("parts") or [], 1):
            if not isinstance(p, dict) or p.get("id") is None:
                continue
            length = p.get("length")
            chapters.append(ChapterDescriptor(
                index=len(chapters) + 1,
                id=str(p["id"]),
                title=p.get("title") or f"Chapter {i}",
                length=_as_int(length) if length is not None else None,
            ))
        info.chapters = chapters

    async def _scrape_story_page(self, info: StoryInfo) -> None:
        print("[info] metadata incomplete, scraping story page…")
        try:
            r = await self._http.get(info.url, timeout=self.timeout)
            r.raise_for_status()
        except httpx.HTTPError as e:
            print(f"[warn] story page scrape failed: {_describe(e)}")
            return
        soup = BeautifulSoup(r.text, "html.parser")

        def meta(prop: str) -> Optional[str]:
            el = soup.select_one(f'meta[property="{prop}"]')
            if el is None:
                return None
            return (el.get("content") or "").strip() or None

        def text(sel: str) -> Optional[str]:
            el = soup.select_one(sel)
            if el is None:
                return None
            return el.get_text(" ", strip=True) or None

        if info.title == "Untitled":
            info.title = meta("og:title") or text(".story-info__title") or info.title
        if info.author == "Unknown":
            info.author = meta("og:author") or text(".author-info__username") or info.author
        info.cover = info.cover or meta("og:image")
        if not info.cover:
            img = soup.select_one(".story-cover img")
            info.cover = img.get("src") if img is not None else None
        info.description = info.description or meta("og:description") or text(".description-text")


# ----------------------------
# Orchestration
# ----------------------------

def _write_file(bundle: StoryBundle, path: str, fonts_dir: Optional[str]) -> None:
    from pdf_builder import write_pdf

    with open(path, "wb") as f:
        write_pdf(bundle, f, fonts_dir=fonts_dir)


async def fetch_and_build(client: WattpadClient, url: str, out_dir: str, *,
                          max_chapters: Optional[int] = None, sequential: bool = False,
                          batch_size: Optional[int] = None, delay: Optional[float] = None,
                          deadline: Optional[float] = None, fonts_dir: Optional[str] = None):
    info = await client.fetch_story(url)
    chapters = info.chapters
    if max_chapters is not None and max_chapters > 0:
        chapters = chapters[: int(max_chapters)]

    print(f"[stage] fetching {len(chapters)} chapters…")
    texts = await client.fetch_all(chapters, sequential=sequential, batch_size=batch_size,
                                   delay=delay, deadline=deadline)
    failed = sum(1 for c in texts if is_placeholder(c.body))
    if failed:
        print(f"[warn] {failed} chapter(s) will be shown as placeholders")

    bundle = StoryBundle(title=info.title, author=info.author, description=info.description,
                         chapters=texts, source_url=info.url)
    os.makedirs(out_dir, exist_ok=True)
    out_path = os.path.join(out_dir, f"{slugify(info.title) or 'wattpad'}.pdf")
    print(f"[stage] writing {out_path}…")
    await asyncio.to_thread(_write_file, bundle, out_path, fonts_dir)
    return out_path, info.title, len(chapters)


# ----------------------------
# Main
# ----------------------------

async def _run(args) -> Tuple[str, str, int]:
    async with WattpadClient(max_retries=args.retries, batch_size=args.batch_size,
                             throttle=args.delay, proxy=args.proxy) as client:
        return await fetch_and_build(
            client, args.url, args.out,
            max_chapters=(args.max_chapters if args.max_chapters and args.max_chapters > 0 else None),
            sequential=args.sequential,
            deadline=(args.time_limit if args.time_limit and args.time_limit > 0 else None),
            fonts_dir=args.fonts_dir,
        )


def main():
    ap = argparse.ArgumentParser(description="Wattpad → PDF packer")
    ap.add_argument("url", help="Story URL, e.g. https://www.wattpad.com/story/123456789")
    ap.add_argument("--out", default="output", help="Output directory")
    ap.add_argument("--batch-size", type=int, default=BATCH_SIZE, help=f"Chapters fetched in parallel (default: {BATCH_SIZE})")
    ap.add_argument("--sequential", action="store_true", help="Fetch one chapter at a time with a polite delay")
    ap.add_argument("--delay", type=float, default=THROTTLE, help=f"Seconds between sequential fetches (default: {THROTTLE})")
    ap.add_argument("--retries", type=int, default=MAX_RETRIES, help=f"Retries per chapter (default: {MAX_RETRIES})")
    ap.add_argument("--time-limit", type=float, default=0, help="Wall-clock ceiling for all chapter fetches in seconds (0 = none)")
    ap.add_argument("--fonts-dir", default=None, help="Directory holding nirmala.ttf / nirmala-bold.ttf")
    ap.add_argument("--max-chapters", "-max", type=int, default=0, help="Fetch up to N chapters (0 = all)")
    ap.add_argument("--proxy", default=None, help="HTTP/HTTPS proxy, e.g. http://host:port")
    ap.add_argument("--debug", "-v", action="store_true", help="Enable verbose HTTP request/response logs")
    args = ap.parse_args()

    global HTTP_LOG
    HTTP_LOG = bool(args.debug)

    if not extract_story_id(args.url):
        print("[error] Could not find a valid story id in that URL.")
        sys.exit(2)

    try:
        out_file, title, count = asyncio.run(_run(args))
    except WattpadError as e:
        print(f"[error] {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\n[warn] aborted by user")
        sys.exit(130)

    print(f"[success] Wrote PDF: {out_file}  |  Title: {title}  |  Chapters: {count}")


if __name__ == "__main__":
    main()
