"""
FastAPI application for QuickDrop: share text and files behind a 6-digit
pickup code that expires after a few minutes.
"""
import asyncio
import logging
import mimetypes
from contextlib import asynccontextmanager, suppress
from datetime import timedelta
from pathlib import Path
from typing import List, Optional
from urllib.parse import quote

from fastapi import FastAPI, UploadFile, File, Form, HTTPException, Request, Query
from fastapi.responses import HTMLResponse, FileResponse, JSONResponse, StreamingResponse
from fastapi.templating import Jinja2Templates
from starlette.background import BackgroundTask
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware

from quickdrop.bundle import BUNDLE_FILENAME
from quickdrop.config import Settings, settings as default_settings
from quickdrop.errors import NotFound, WriteError
from quickdrop.file_store import FileStore, iter_file
from quickdrop.item_store import Item, ItemStore
from quickdrop.models import ItemResponse, UploadResponse
from quickdrop.reaper import reaper_loop
from quickdrop.security import sanitize_filename, log_security_event
from quickdrop.share_service import DropService

logging.basicConfig(
    level=logging.DEBUG if default_settings.debug else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

TEMPLATES_PATH = Path(__file__).parent / "templates"
PREVIEW_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif"}

templates = Jinja2Templates(directory=TEMPLATES_PATH)


def content_disposition(disposition: str, filename: str) -> str:
    ascii_name = filename.encode("ascii", "replace").decode().replace('"', "_")
    return f"{disposition}; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(filename)}"


def is_image(filename: str) -> bool:
    return Path(filename).suffix.lower() in PREVIEW_EXTENSIONS


def get_service(request: Request) -> DropService:
    return request.app.state.drop_service


# Security Headers Middleware
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Content-Security-Policy"] = (
            "default-src 'self'; "
            "script-src 'self' 'unsafe-inline'; "
            "style-src 'self' 'unsafe-inline'; "
            "img-src 'self' data:; "
            "frame-ancestors 'none';"
        )
        return response


# Reject oversized uploads before the multipart body is parsed
class UploadSizeLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, max_bytes: int):
        super().__init__(app)
        self.max_bytes = max_bytes

    async def dispatch(self, request: Request, call_next):
        if request.method == "POST" and request.url.path == "/upload":
            length = request.headers.get("content-length")
            if length and length.isdigit() and int(length) > self.max_bytes:
                log_security_event("upload_too_large", {"content_length": length})
                return JSONResponse({"detail": "Upload too large"}, status_code=413)
        return await call_next(request)


async def not_found_handler(request: Request, exc: NotFound):
    return JSONResponse({"detail": str(exc)}, status_code=404)


async def write_error_handler(request: Request, exc: WriteError):
    return JSONResponse({"detail": str(exc)}, status_code=500)


def create_app(settings: Settings = default_settings) -> FastAPI:
    store = ItemStore()
    files = FileStore(settings.storage_path)
    service = DropService(store, files, ttl=timedelta(seconds=settings.ttl_seconds))

    @asynccontextmanager
    async def lifespan(app):
        """Start the reaper on startup and stop it on shutdown."""
        reaper = asyncio.create_task(
            reaper_loop(store, files, settings.reaper_interval_seconds)
        )
        logger.info(
            f"QuickDrop started, storage {files.root}, "
            f"max upload {settings.max_upload_mb} MB"
        )
        yield
        reaper.cancel()
        with suppress(asyncio.CancelledError):
            await reaper
        logger.info("QuickDrop shutting down")

    app = FastAPI(title="QuickDrop", docs_url=None, redoc_url=None, lifespan=lifespan)
    app.state.drop_service = service
    app.add_exception_handler(NotFound, not_found_handler)
    app.add_exception_handler(WriteError, write_error_handler)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(UploadSizeLimitMiddleware, max_bytes=settings.max_upload_bytes)

    @app.get("/", response_class=HTMLResponse)
    async def index_page(request: Request):
        """Serve the upload / pickup page."""
        return templates.TemplateResponse(
            request, "index.html", {"ttl_minutes": settings.ttl_seconds // 60}
        )

    @app.post("/upload", response_model=UploadResponse)
    async def upload(
        request: Request,
        text: Optional[str] = Form(None),
        files: List[UploadFile] = File(default=[]),
    ):
        """Store text and/or files under a new pickup code."""
        # Browsers send an empty part when no file was chosen
        chosen = [f for f in files if f.filename]
        if not text and not chosen:
            raise HTTPException(status_code=400, detail="Nothing to share")

        uploads = []
        for f in chosen:
            safe_name = sanitize_filename(f.filename)
            if safe_name != f.filename:
                logger.info(f"Filename cleaned: {f.filename!r} -> {safe_name!r}")
            uploads.append((safe_name, f.file))

        result = await run_in_threadpool(get_service(request).submit, text, uploads)
        return UploadResponse(
            code=result.code,
            expires_at=result.item.expires_at.isoformat(),
            files=result.item.display_names,
            skipped=result.skipped,
        )

    @app.get("/view", response_class=HTMLResponse)
    async def view_page(request: Request, code: str = Query(...)):
        """Show the text, previews, and download links of a drop."""
        item: Item = get_service(request).fetch_item(code.strip())
        return templates.TemplateResponse(request, "view.html", {
            "code": code.strip(),
            "text": item.text,
            "files": [
                {"name": name, "is_image": is_image(name)}
                for name in item.display_names
            ],
        })

    @app.get("/api/items/{code}", response_model=ItemResponse)
    async def get_item(request: Request, code: str):
        """JSON view of a live drop."""
        item = get_service(request).fetch_item(code)
        return ItemResponse(
            code=code,
            text=item.text,
            files=item.display_names,
            expires_at=item.expires_at.isoformat(),
        )

    @app.get("/download")
    async def download_file(
        request: Request,
        code: str = Query(...),
        file: str = Query(...),
        preview: Optional[str] = Query(None),
    ):
        """Stream a single file, inline when previewing."""
        record, fh = await run_in_threadpool(get_service(request).fetch_file, code, file)
        # Anything else (HTML, SVG, ...) would run same-origin if rendered inline
        if preview == "1" and is_image(record.display_name):
            media_type = mimetypes.guess_type(record.display_name)[0] or "application/octet-stream"
            disposition = "inline"
        else:
            media_type = "application/octet-stream"
            disposition = "attachment"
        return StreamingResponse(
            iter_file(fh),
            media_type=media_type,
            headers={"Content-Disposition": content_disposition(disposition, record.display_name)},
        )

    @app.get("/download_all")
    async def download_all(request: Request, code: str = Query(...)):
        """Bundle every file of a drop into one ZIP."""
        service = get_service(request)
        path = await run_in_threadpool(service.fetch_bundle, code)
        return FileResponse(
            path=path,
            filename=BUNDLE_FILENAME,
            media_type="application/zip",
            background=BackgroundTask(service.files.discard_path, path),
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=default_settings.host, port=default_settings.port)
