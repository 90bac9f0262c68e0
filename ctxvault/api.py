"""ctxvault REST API server (FastAPI)."""

import asyncio
import contextlib
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .context import VaultContext
from .exceptions import CtxVaultError
from .jobs import JobType
from .models import CamelModel

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------

class ContextQuery(CamelModel):
    query: Optional[str] = None
    top_k: Optional[int] = Field(default=None, ge=1)
    project_id: Optional[str] = None


class CreateProjectRequest(CamelModel):
    project_id: Optional[str] = None
    directory_path: Optional[str] = None
    exclude_patterns: list[str] = Field(default_factory=list)


class UpdateProjectRequest(CamelModel):
    directory_path: Optional[str] = None
    exclude_patterns: list[str] = Field(default_factory=list)


def _dump(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(by_alias=True, mode="json")


def _job_started(job, message: str) -> dict[str, Any]:
    return {
        "jobId": job.id,
        "projectId": job.project_id,
        "status": "started",
        "message": message,
    }


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def create_app(context: VaultContext) -> FastAPI:
    """
    Build the REST application around a shared context.

    Startup warms the embedding model (failures fall back to hash vectors) and
    starts the periodic job cleanup; shutdown stops the cleanup loop.
    """

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI):
        if await asyncio.to_thread(context.embeddings.warm_up):
            logger.info("Embedding model ready")
        else:
            logger.warning("Embedding model unavailable, serving with fallback vectors")

        cleanup = asyncio.create_task(
            context.jobs.run_cleanup_loop(
                interval_seconds=context.config.get("jobs", "cleanup_interval_seconds", default=3600),
            ),
            name="ctxvault-job-cleanup",
        )
        try:
            yield
        finally:
            cleanup.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await cleanup

    app = FastAPI(title="ctxvault", lifespan=lifespan)
    app.state.context = context

    @app.exception_handler(CtxVaultError)
    async def _ctxvault_error(request: Request, exc: CtxVaultError) -> JSONResponse:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=500, content={"error": str(exc)})

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    @app.post("/mcp/context")
    async def context_query(body: ContextQuery):
        if not body.query:
            raise HTTPException(status_code=400, detail="query is required")
        top_k = body.top_k or context.config.get("search", "default_top_k", default=3)
        logger.info(f'Context query: "{body.query}" (project: {body.project_id or "all"}, limit: {top_k})')
        results = await context.search(body.query, top_k, body.project_id)
        return {"results": [_dump(result) for result in results]}

    # ------------------------------------------------------------------
    # Indexing jobs
    # ------------------------------------------------------------------

    @app.post("/api/projects")
    async def create_project(body: CreateProjectRequest):
        if not body.project_id or not body.directory_path:
            raise HTTPException(status_code=400, detail="projectId and directoryPath are required")
        job = context.jobs.start_index_job(
            context.indexer,
            JobType.INDEX,
            body.directory_path,
            body.project_id,
            exclude_patterns=body.exclude_patterns,
            delta_only=False,
        )
        return _job_started(job, f"Indexing job started. Use /api/jobs/{job.id} to check progress.")

    @app.post("/api/projects/{project_id}/update")
    async def update_project(project_id: str, body: UpdateProjectRequest):
        if not body.directory_path:
            raise HTTPException(status_code=400, detail="directoryPath is required")
        job = context.jobs.start_index_job(
            context.indexer,
            JobType.UPDATE,
            body.directory_path,
            project_id,
            exclude_patterns=body.exclude_patterns,
            delta_only=True,
        )
        return _job_started(job, f"Delta update job started. Use /api/jobs/{job.id} to check progress.")

    @app.get("/api/jobs")
    async def list_jobs():
        return [_dump(job) for job in context.jobs.get_all_jobs()]

    # Registered before /api/jobs/{job_id} so "active" is not taken as an id
    @app.get("/api/jobs/active")
    async def list_active_jobs():
        return [_dump(job) for job in context.jobs.get_active_jobs()]

    @app.get("/api/jobs/{job_id}")
    async def get_job(job_id: str):
        job = context.jobs.get_job(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail="Job not found")
        return _dump(job)

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    @app.get("/api/projects")
    async def list_projects():
        projects = await asyncio.to_thread(context.store.list_projects)
        return [_dump(project) for project in projects]

    @app.delete("/api/projects/{project_id}")
    async def delete_project(project_id: str):
        deleted = await asyncio.to_thread(context.store.delete_project, project_id)
        return {"deletedCount": deleted}

    @app.get("/api/projects/{project_id}/stats")
    async def project_stats(project_id: str):
        stats = await asyncio.to_thread(context.store.get_project_stats, project_id)
        return _dump(stats)

    @app.get("/api/projects/{project_id}/metadata")
    async def project_metadata(project_id: str):
        metadata = await asyncio.to_thread(context.store.get_project_metadata, project_id)
        if metadata is None:
            raise HTTPException(status_code=404, detail="Project metadata not found")
        return _dump(metadata)

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    @app.get("/health")
    async def health():
        timestamp = datetime.now(timezone.utc).isoformat()
        try:
            await asyncio.to_thread(context.store.db.table_names)
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return JSONResponse(
                status_code=500,
                content={"status": "unhealthy", "error": str(e), "timestamp": timestamp},
            )
        return {
            "status": "healthy",
            "store": "connected",
            "embeddings": "model" if context.embeddings.available else "fallback",
            "activeJobs": len(context.jobs.get_active_jobs()),
            "timestamp": timestamp,
        }

    return app


def run_server(context: VaultContext, host: Optional[str] = None, port: Optional[int] = None) -> None:
    """Serve the REST API with uvicorn until interrupted."""
    import uvicorn

    host = host or context.config.get("server", "host", default="127.0.0.1")
    port = port or context.config.get("server", "port", default=3000)
    logger.info(f"ctxvault server running on http://{host}:{port}")
    uvicorn.run(create_app(context), host=host, port=port, log_config=None)
