"""REST API server for TubeDigest daemon."""

import html
import time
from typing import Dict, Any

from fastapi import FastAPI, Depends, Request, Query
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, Response
from rich.console import Console

from .api_errors import APIError, ConflictError, ServerError, from_pipeline_error
from .api_models import APIResponse, SubscriberRequest
from .errors import SubscriberExistsError, TubeDigestError
from .fetchers.captions import transcript_metadata
from .models import Artifact, utcnow
from .monitor import ChannelMonitor
from .observability import log as obs_log
from .summarizer import REQUIRED_KEYS, OPTIONAL_KEYS

console = Console()

SECTION_HEADINGS = {
    "overview": "Overview",
    "marketUpdate": "Market Update",
    "technicalCorner": "Technical Corner",
    "projectSpotlight": "Project Spotlight",
    "keyTakeaway": "Key Takeaway",
    "mentionedTokens": "Mentioned Tokens",
    "disclaimer": "Disclaimer",
}


def render_markdown(digest: Dict[str, Any]) -> str:
    """Render digest sections as a markdown document."""
    lines = [f"# {digest.get('title', '')}", ""]
    for key in REQUIRED_KEYS + OPTIONAL_KEYS:
        if key == "title" or key not in digest:
            continue
        value = digest[key]
        if isinstance(value, list):
            value = ", ".join(str(v) for v in value)
        lines.extend([f"## {SECTION_HEADINGS.get(key, key)}", "", str(value), ""])
    return "\n".join(lines).rstrip() + "\n"


def create_app(
    monitor: ChannelMonitor,
    storage,
    extractor,
    summarizer,
    notifier=None,
) -> FastAPI:
    """Build the API bound to one set of pipeline components.

    The polling handle, once started, is attached as ``app.state.polling``.
    """
    app = FastAPI(
        title="TubeDigest API",
        description="Manual channel checks, transcripts and digest subscriptions",
        version="1.0.0",
    )
    app.state.monitor = monitor
    app.state.storage = storage
    app.state.extractor = extractor
    app.state.summarizer = summarizer
    app.state.notifier = notifier
    app.state.polling = None

    @app.middleware("http")
    async def log_requests(request: Request, call_next) -> Response:
        """Log API requests in same style as daemon output."""
        if request.url.path == "/health":
            return await call_next(request)

        start_time = time.time()
        response = await call_next(request)
        duration = (time.time() - start_time) * 1000

        client_ip = request.client.host if request.client else "unknown"
        query_str = f"?{request.url.query}" if request.url.query else ""
        console.print(
            f"[dim]   📡 API: {request.method} {request.url.path}{query_str} from {client_ip} → {response.status_code} ({duration:.0f}ms)[/dim]"
        )
        obs_log(
            "api.request",
            method=request.method,
            path=request.url.path,
            query=request.url.query if request.url.query else None,
            client_ip=client_ip,
            status_code=response.status_code,
            duration_ms=int(duration),
        )
        return response

    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
        """Formats all errors as: {"success": false, "message": "...", "data": ...}"""
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": exc.message, "data": exc.data},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Convert FastAPI's {"detail": [...]} format to our envelope."""
        first_error = exc.errors()[0]
        field = " -> ".join(str(loc) for loc in first_error["loc"])

        return JSONResponse(
            status_code=422,
            content={
                "success": False,
                "message": f"Validation error in {field}: {first_error['msg']}",
                "data": None,
            },
        )

    @app.get("/health")
    async def health(request: Request) -> Dict[str, Any]:
        state = request.app.state
        polling = state.polling
        return {
            "status": "healthy",
            "timestamp": utcnow().isoformat(),
            "services": {
                "youtube": bool(getattr(state.monitor.source, "api_key", None)),
                "llm": state.summarizer is not None,
                "email": bool(state.notifier and state.notifier.configured),
                "storage": state.storage is not None,
                "monitor": state.monitor.state.value,
            },
            "polling": polling.status() if polling else None,
        }

    @app.api_route("/check-channel/{channel_id}", methods=["GET", "POST"])
    async def check_channel(
        channel_id: str,
        monitor: ChannelMonitor = Depends(get_monitor),
        summary: bool = Query(False, description="Report stored digests too"),
        send_email: bool = Query(False, alias="sendEmail"),
    ) -> JSONResponse:
        """Check one watched channel now.

        Per-video failures turn the response into a failure carrying the
        full result in ``data``.
        """
        console.print(
            f"Channel check requested for channel: {channel_id}, summary: {summary}, sendEmail: {send_email}"
        )
        try:
            result = await monitor.check_channel(
                channel_id, force_summary=summary, force_send_email=send_email
            )
        except TubeDigestError as e:
            raise from_pipeline_error(e)
        except Exception as e:
            raise ServerError(f"Failed to check channel: {e}")

        body = result.to_dict()
        if result.items_failed:
            first = result.items_failed[0]
            status_code = _status_for_kind(first.kind)
            raise APIError(
                status_code,
                f"Failed to process video {first.source_id}: {first.error}",
                body,
            )

        return JSONResponse(content={"success": True, **body})

    @app.get("/transcript/{video_id}")
    async def get_transcript(
        video_id: str,
        request: Request,
        summary: bool = Query(False),
        send_email: bool = Query(False, alias="sendEmail"),
        format: str = Query("json", pattern="^(json|markdown|html)$"),
    ) -> Response:
        """Extract a video's transcript, optionally with a digest."""
        state = request.app.state
        try:
            units = await state.extractor.extract(video_id)
        except TubeDigestError as e:
            raise from_pipeline_error(e)
        except Exception as e:
            raise ServerError(f"An error occurred while processing the request: {e}")

        digest = None
        if summary:
            try:
                digest = await state.summarizer.summarize(units)
            except TubeDigestError as e:
                raise APIError(
                    e.status_code, f"Failed to generate summary: {e.message}"
                )

            if send_email:
                artifact = Artifact(
                    source_id=video_id,
                    channel_id="",
                    channel_name="",
                    title=str(digest.get("title", "")),
                    digest=digest,
                    source_url=f"https://www.youtube.com/watch?v={video_id}",
                )
                await state.monitor.notify(artifact, force=True)

        if format == "markdown":
            text = render_markdown(digest) if digest else _plain_transcript(units)
            return PlainTextResponse(text, media_type="text/markdown")

        if format == "html":
            text = render_markdown(digest) if digest else _plain_transcript(units)
            return HTMLResponse(
                '<pre style="font-family: Arial, sans-serif; max-width: 800px; '
                'margin: 20px auto; padding: 20px; line-height: 1.6;">'
                f"{html.escape(text)}</pre>"
            )

        body: Dict[str, Any] = {
            "video_id": video_id,
            "metadata": transcript_metadata(units),
        }
        if digest is not None:
            body["summary"] = digest
        return JSONResponse(content=body)

    @app.post("/subscribers", status_code=201, response_model=APIResponse)
    async def add_subscriber(request: Request, payload: SubscriberRequest) -> APIResponse:
        """Subscribe an address to digest e-mails."""
        try:
            subscriber = request.app.state.storage.add_subscriber(payload.email)
        except SubscriberExistsError as e:
            raise ConflictError(e.message)
        except Exception as e:
            raise ServerError(f"Failed to add subscriber: {e}")

        return APIResponse(
            success=True,
            message="Subscription successful",
            data={"id": subscriber["id"], "email": subscriber["email"]},
        )

    return app


def get_monitor(request: Request) -> ChannelMonitor:
    return request.app.state.monitor


def _status_for_kind(kind: str) -> int:
    for error_class in _all_subclasses(TubeDigestError):
        if error_class.kind == kind:
            return error_class.status_code
    return 500


def _all_subclasses(cls: type) -> list:
    found = []
    for subclass in cls.__subclasses__():
        found.append(subclass)
        found.extend(_all_subclasses(subclass))
    return found


def _plain_transcript(units) -> str:
    return " ".join(unit.text for unit in units) + "\n"
