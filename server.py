import os
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, List, Optional

import uvicorn
from fastapi import Body, FastAPI, Query
from fastapi.responses import JSONResponse, StreamingResponse
from slugify import slugify

from pdf_builder import FontSet, PdfAssembler
from wattpad import (
    ChapterDescriptor,
    NormalizedChapter,
    StoryBundle,
    StoryNotFound,
    WattpadClient,
    WattpadError,
    extract_story_id,
)

PORT = int(os.environ.get("PORT") or 3000)
TIME_LIMIT = float(os.environ.get("TIME_LIMIT") or 55)


def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status)


def create_app(client_factory: Optional[Callable[[], WattpadClient]] = None,
               fonts_dir: Optional[str] = None, time_limit: Optional[float] = None) -> FastAPI:
    """HTTP front end: story metadata, single chapters and streamed PDF generation."""
    factory = client_factory or WattpadClient
    limit = TIME_LIMIT if time_limit is None else time_limit

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.client = factory()
        app.state.fonts = FontSet(fonts_dir)
        try:
            yield
        finally:
            await app.state.client.close()

    app = FastAPI(title="Wattpad PDF", lifespan=lifespan)

    @app.get("/api/story")
    async def api_story(url: str = Query("")) -> JSONResponse:
        if not extract_story_id(url):
            return _error(400, "Invalid Wattpad URL.")
        try:
            info = await app.state.client.fetch_story(url)
        except StoryNotFound as e:
            return _error(400, str(e))
        except WattpadError as e:
            print(f"[error] story {url}: {e}")
            return _error(500, "Failed to fetch story metadata from Wattpad.")
        return JSONResponse(info.to_json())

    @app.get("/api/chapter")
    async def api_chapter(id: str = Query("")) -> JSONResponse:
        part_id = id.strip()
        if not part_id.isdigit():
            return _error(400, "Invalid chapter id.")
        text = await app.state.client.fetch_chapter_text(part_id)
        return JSONResponse({"id": part_id, "text": text})

    @app.post("/api/generate-pdf")
    async def api_generate_pdf(payload: Any = Body(None)):
        if not isinstance(payload, dict):
            return _error(400, "Invalid payload.")
        title = payload.get("title")
        if not isinstance(title, str) or not title.strip():
            return _error(400, "title is required.")
        raw_chapters = payload.get("chapters")
        if not isinstance(raw_chapters, list):
            return _error(400, "chapters must be a list.")

        chapters: List[Optional[NormalizedChapter]] = []
        wanted: List[ChapterDescriptor] = []
        slots: Dict[int, int] = {}
        for i, item in enumerate(raw_chapters, 1):
            item = item if isinstance(item, dict) else {}
            ch_title = str(item.get("title") or f"Chapter {i}")
            text = item.get("text")
            if isinstance(text, str) and text.strip():
                chapters.append(NormalizedChapter(title=ch_title, body=text))
                continue
            chapters.append(None)
            part_id = str(item.get("id") or "").strip()
            if part_id:
                slots[len(wanted)] = i - 1
                wanted.append(ChapterDescriptor(index=i, id=part_id, title=ch_title))
            else:
                chapters[i - 1] = NormalizedChapter(title=ch_title, body="")

        if wanted:
            print(f"[stage] fetching {len(wanted)} of {len(raw_chapters)} chapters for the PDF…")
            fetched = await app.state.client.fetch_all(wanted, deadline=limit or None)
            for pos, chapter in enumerate(fetched):
                chapters[slots[pos]] = chapter

        bundle = StoryBundle(
            title=title.strip(),
            author=str(payload.get("author") or "Unknown"),
            description=payload.get("description") if isinstance(payload.get("description"), str) else None,
            chapters=chapters,
        )
        filename = f"{slugify(bundle.title) or 'wattpad'}.pdf"
        stream = PdfAssembler(fonts=app.state.fonts).assemble(bundle)
        return StreamingResponse(
            stream,
            media_type="application/pdf",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    return app


def main():
    print(f"[info] listening on port {PORT}")
    uvicorn.run(create_app(fonts_dir=os.environ.get("FONTS_DIR")), host="0.0.0.0", port=PORT)


if __name__ == "__main__":
    main()
