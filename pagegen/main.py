import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, Optional, Set

import aiosqlite
from fastapi import APIRouter, Body, Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import StreamingResponse

from .blocks import build_block_html, try_build_from_json
from .config import AppSettings, CONFIG_PATH, load_settings, save_settings
from .context import get_session_context, update_session_context
from .db import Database
from .events import ProgressEmitter, sse_format
from .executor import execute_plan
from .llm import ModelRouter
from .pipeline import orchestrate
from .schemas import ExecutePlanRequest, GenerateRequest, RenderRequest
from .tools import ToolContext, ToolRegistry
from .validator import validate_results


logger = logging.getLogger("uvicorn.error")

router = APIRouter()


def get_settings(request: Request) -> AppSettings:
    return request.app.state.settings


def get_db(request: Request) -> Database:
    return request.app.state.db


def get_model_router(request: Request) -> ModelRouter:
    return request.app.state.model_router


def get_tools(request: Request) -> ToolRegistry:
    return request.app.state.tools


def get_run_tasks(request: Request) -> Set[asyncio.Task]:
    return request.app.state.run_tasks


def get_config_path(request: Request) -> Path:
    return request.app.state.config_path


def _apply_log_level(level: str) -> None:
    resolved = getattr(logging, str(level or "INFO").upper(), logging.INFO)
    if not isinstance(resolved, int):
        resolved = logging.INFO
    logger.setLevel(resolved)


def _track(run_tasks: Set[asyncio.Task], coro) -> asyncio.Task:
    task = asyncio.create_task(coro)
    run_tasks.add(task)
    task.add_done_callback(run_tasks.discard)
    return task


def _stream(emitter: ProgressEmitter) -> StreamingResponse:
    async def event_generator():
        try:
            async for event in emitter:
                yield sse_format(event)
        finally:
            # Client went away or the run finished; later emits become no-ops.
            emitter.disconnect()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/health")
async def health(settings: AppSettings = Depends(get_settings)):
    return {"ok": True, "preset": settings.model_preset}


@router.get("/settings")
async def get_settings_route(settings: AppSettings = Depends(get_settings)):
    return {"settings": settings.to_safe_dict()}


@router.post("/settings")
async def update_settings(
    request: Request,
    payload: Dict[str, Any] = Body(default={}),
    settings: AppSettings = Depends(get_settings),
    config_path: Path = Depends(get_config_path),
):
    merged = {**settings.model_dump(), **payload}
    try:
        new_settings = AppSettings(**merged)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    save_settings(new_settings, config_path)
    request.app.state.settings = new_settings
    _apply_log_level(new_settings.log_level)
    return {"ok": True, "settings": new_settings.to_safe_dict()}


@router.post("/generate")
async def generate(
    payload: GenerateRequest,
    settings: AppSettings = Depends(get_settings),
    db: Database = Depends(get_db),
    model_router: ModelRouter = Depends(get_model_router),
    run_tasks: Set[asyncio.Task] = Depends(get_run_tasks),
):
    query = payload.query.strip()
    project_id = payload.project_id.strip()
    if not query:
        raise HTTPException(status_code=400, detail="query is required.")
    if not project_id:
        raise HTTPException(status_code=400, detail="projectId is required.")

    emitter = ProgressEmitter()
    credentials = settings.credentials()

    async def run_pipeline() -> None:
        try:
            session = await get_session_context(db, payload.session_id)
            result = await orchestrate(
                query,
                project_id,
                model_router,
                credentials,
                emitter,
                db=db,
                session=session,
                intent_types=payload.intent_types or settings.default_intent_types,
                brand_voice=payload.brand_voice,
                hybrid_scaffold=payload.hybrid_scaffold,
                batch_size=settings.generation_batch_size,
            )
            if payload.session_id:
                try:
                    await update_session_context(db, payload.session_id, query, result.intent.intent_type)
                except aiosqlite.Error as exc:
                    logger.warning("Session update failed for %s: %s", payload.session_id, exc)
        except Exception as exc:
            logger.exception("Generation failed for project %s", project_id)
            emitter.emit("error", {"message": str(exc)})
        finally:
            emitter.close()

    _track(run_tasks, run_pipeline())
    return _stream(emitter)


@router.post("/plans/execute")
async def run_plan(
    payload: ExecutePlanRequest,
    settings: AppSettings = Depends(get_settings),
    db: Database = Depends(get_db),
    model_router: ModelRouter = Depends(get_model_router),
    tools: ToolRegistry = Depends(get_tools),
    run_tasks: Set[asyncio.Task] = Depends(get_run_tasks),
):
    plan = payload.plan
    if not plan.steps:
        raise HTTPException(status_code=400, detail="Plan has no steps.")

    emitter = ProgressEmitter()
    credentials = settings.credentials()
    tool_context = ToolContext(project_id=payload.project_id, db=db)

    async def run_steps() -> None:
        try:
            report = await execute_plan(plan, tools, model_router, credentials, emitter, tool_context)
            if report.failed:
                logger.warning("%d of %d plan steps failed", len(report.failed), len(report.results))
            if payload.run_validation:
                verdict = await validate_results(plan, report.results, model_router, credentials)
                emitter.emit("validation", verdict.to_wire())
            emitter.emit("execution-complete", report.to_wire())
        except Exception as exc:
            logger.exception("Plan execution failed")
            emitter.emit("error", {"message": str(exc)})
        finally:
            emitter.close()

    _track(run_tasks, run_steps())
    return _stream(emitter)


@router.get("/tools")
async def list_tools(tools: ToolRegistry = Depends(get_tools)):
    return {"tools": tools.describe()}


@router.post("/blocks/render")
async def render_block(payload: RenderRequest):
    return {"html": build_block_html(payload.block_type, payload.content)}


@router.post("/pages/render")
async def render_page(request: Request):
    body = (await request.body()).decode("utf-8", errors="replace")
    html = try_build_from_json(body)
    if html is None:
        raise HTTPException(status_code=400, detail="Expected {title?, blocks: [{type, content}]}")
    return {"html": html}


@router.get("/monitoring/recent")
async def monitoring_recent(
    project_id: Optional[str] = Query(default=None, alias="projectId"),
    limit: int = Query(default=50, ge=1, le=500),
    db: Database = Depends(get_db),
):
    if not project_id:
        raise HTTPException(status_code=400, detail="projectId required")
    return {"generations": await db.list_actions(project_id, limit=limit)}


@router.get("/monitoring/stats")
async def monitoring_stats(
    project_id: Optional[str] = Query(default=None, alias="projectId"),
    days: int = Query(default=30, ge=1, le=365),
    db: Database = Depends(get_db),
):
    if not project_id:
        raise HTTPException(status_code=400, detail="projectId required")
    return await db.action_stats(project_id, days=days)


def create_app(
    settings: AppSettings,
    *,
    db: Optional[Database] = None,
    model_router: Optional[ModelRouter] = None,
    tools: Optional[ToolRegistry] = None,
    config_path: Optional[Path] = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await app.state.db.init()
        try:
            yield
        finally:
            for task in list(app.state.run_tasks):
                task.cancel()
            await app.state.model_router.close()

    _apply_log_level(settings.log_level)
    app = FastAPI(title="pagegen", lifespan=lifespan)
    app.state.settings = settings
    app.state.db = db or Database(settings.database_path)
    app.state.model_router = model_router or ModelRouter(
        settings.model_preset,
        endpoints=settings.endpoints(),
        timeout=settings.request_timeout_s,
    )
    app.state.tools = tools or ToolRegistry()
    app.state.run_tasks = set()
    app.state.config_path = config_path or CONFIG_PATH
    app.include_router(router)
    return app


app = create_app(load_settings())


if __name__ == "__main__":
    import os
    import uvicorn

    settings = app.state.settings
    reload_enabled = os.getenv("PAGEGEN_RELOAD", "").lower() in ("1", "true", "yes", "on")
    try:
        uvicorn.run(
            "pagegen.main:app",
            host=settings.host,
            port=settings.port,
            reload=reload_enabled,
        )
    except KeyboardInterrupt:
        pass
