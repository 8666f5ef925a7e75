from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Literal

from fastapi import BackgroundTasks, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, Response
from jinja2 import Environment, FileSystemLoader, select_autoescape
from pydantic import BaseModel, ConfigDict, Field

from app.core.content_fetcher import get_extractor
from app.core.content_types import OutputType, SocialPlatform, Tone
from app.core.conversion import format_issue, get_converter
from app.core.errors import ConfigurationError, ConversionError, ValidationError
from app.core.export import build_mailto, download_filename, html_to_text
from app.core.llm_providers import PROVIDERS, get_chat_provider
from app.core.logging_config import setup_logging
from app.core.settings import Settings

BASE_DIR = Path(__file__).resolve().parent
TEMPLATES_DIR = BASE_DIR / "templates"

OUTPUT_LABELS = {
    OutputType.NEWSLETTER: "Newsletter",
    OutputType.SOCIAL: "Social Posts",
    OutputType.EMAIL: "Email Draft",
}
PLATFORM_LABELS = {
    SocialPlatform.TWITTER: "Twitter/X",
    SocialPlatform.LINKEDIN: "LinkedIn",
    SocialPlatform.INSTAGRAM: "Instagram",
}
TONE_LABELS = {
    Tone.CONVERSATIONAL: "Conversational",
    Tone.PROFESSIONAL: "Professional",
    Tone.PLAYFUL: "Playful",
}

setup_logging(Settings.from_env().log_level)
logger = logging.getLogger(__name__)

jinja = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html", "xml"]),
)


@asynccontextmanager
async def app_lifespan(_: FastAPI):
    try:
        yield
    finally:
        await get_extractor().close()


app = FastAPI(title="blog2buzz", lifespan=app_lifespan)


def render(template_name: str, **ctx) -> HTMLResponse:
    template = jinja.get_template(template_name)
    return HTMLResponse(template.render(**ctx))


@app.exception_handler(ConversionError)
async def _conversion_error_handler(request: Request, exc: ConversionError) -> JSONResponse:
    logger.warning(f"{request.url.path} failed: {type(exc).__name__}: {exc.message}")
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    error = ValidationError("Invalid input.", details=[format_issue(e) for e in exc.errors()])
    return JSONResponse(error.to_dict(), status_code=error.status_code)


@app.exception_handler(Exception)
async def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unexpected error on {request.url.path}")
    return JSONResponse({"error": "Unexpected error occurred."}, status_code=500)


@app.get("/", response_class=HTMLResponse)
def home(request: Request):
    return render(
        "home.html",
        request=request,
        output_labels=OUTPUT_LABELS,
        platform_labels=PLATFORM_LABELS,
        tone_labels=TONE_LABELS,
    )


@app.post("/api/convert")
async def api_convert(request: Request, background_tasks: BackgroundTasks):
    """Convert a blog article into the requested marketing formats.

    Body: ConversionRequest JSON (camelCase keys).
    Returns: {outputs, metadata, rawContent}. Persistence runs after the
    response is sent.
    """
    try:
        payload = await request.json()
    except ValueError:
        # Covers bodies that are not UTF-8 as well as malformed JSON
        raise ValidationError("Invalid input.", details=["Request body must be valid JSON."])

    result = await get_converter().convert(payload, schedule=background_tasks.add_task)
    return result.to_dict()


class ExportRequest(BaseModel):
    """Request body of POST /api/export."""

    model_config = ConfigDict(populate_by_name=True)

    output_type: OutputType = Field(alias="outputType")
    html: str
    format: Literal["html", "text", "email"] = "html"
    article_title: str | None = Field(default=None, alias="articleTitle")


@app.post("/api/export")
def api_export(body: ExportRequest):
    """Export an edited output as a download or a mailto: draft link."""
    if body.format == "email":
        return {"mailto": build_mailto(body.html, body.article_title)}

    if body.format == "text":
        content, media_type, extension = html_to_text(body.html), "text/plain", "txt"
    else:
        content, media_type, extension = body.html, "text/html", "html"

    filename = download_filename(body.output_type, extension)
    return Response(
        content=content,
        media_type=f"{media_type}; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/api/health")
def api_health():
    """Report configuration status without calling external services."""
    s = Settings.from_env()

    llm_error = None
    try:
        provider = get_chat_provider(s)
        model = provider.model_id
    except ConfigurationError as e:
        llm_error = e.message
        entry = PROVIDERS.get(s.llm_provider)
        model = s.llm_model or (entry.default_model if entry else None)

    if s.supabase_configured:
        persistence = "supabase"
    elif s.db_path:
        persistence = "sqlite"
    else:
        persistence = "none"

    return {
        "status": "ok" if llm_error is None else "degraded",
        "llm_provider": s.llm_provider,
        "llm_model": model,
        "llm_error": llm_error,
        "persistence": persistence,
    }
