"""
MCP server for ctxvault.

Exposes semantic code search and project management to Claude Code and other
MCP clients via the Model Context Protocol (stdio transport).
"""

import argparse
import asyncio
import logging
import threading
from pathlib import Path
from typing import Optional

from mcp.server.fastmcp import FastMCP

from .config import Config
from .context import VaultContext
from .jobs import JobType
from .logging_config import setup_logging_from_config

logger = logging.getLogger(__name__)


def create_server(context: VaultContext) -> FastMCP:
    """
    Build a FastMCP server whose tools operate on ``context``.

    ``project_id`` and ``directory_path`` fall back to the ``mcp`` config
    section (``DEFAULT_PROJECT_ID`` / ``DEFAULT_DIRECTORY_PATH``).
    """
    mcp = FastMCP("ctxvault")
    config = context.config

    def resolve_project(project_id: Optional[str]) -> Optional[str]:
        return project_id or config.get("mcp", "default_project_id")

    def resolve_directory(directory_path: Optional[str]) -> Optional[str]:
        return directory_path or config.get("mcp", "default_directory_path")

    async def run_job(
        job_type: JobType,
        project_id: Optional[str],
        directory_path: Optional[str],
        exclude_patterns: Optional[list[str]],
    ) -> dict:
        project_id = resolve_project(project_id)
        directory_path = resolve_directory(directory_path)
        if not project_id:
            return {"error": "Project ID is required (argument or DEFAULT_PROJECT_ID)"}
        if not directory_path:
            return {"error": "Directory path is required (argument or DEFAULT_DIRECTORY_PATH)"}

        delta_only = job_type is JobType.UPDATE
        job = context.jobs.create_job(
            job_type,
            project_id,
            {"directory_path": directory_path, "exclude_patterns": list(exclude_patterns or []), "delta_only": delta_only},
        )
        logger.info(f"{job_type.value.capitalize()} {project_id} from {directory_path} (job {job.id})")
        try:
            result = await context.jobs.run_index_job(
                job.id,
                context.indexer,
                directory_path,
                project_id,
                exclude_patterns=exclude_patterns,
                delta_only=delta_only,
            )
        except Exception as e:
            logger.error(f"Job {job.id} failed: {e}", exc_info=True)
            return {"job_id": job.id, "error": str(e)}

        response = {
            "job_id": job.id,
            "project_id": project_id,
            "directory_path": directory_path,
            "files_processed": result.files_processed,
            "chunks_indexed": result.chunks_indexed,
            "files_total": result.files_total,
        }
        if result.delta_stats is not None:
            response["delta_stats"] = result.delta_stats.model_dump()
        return response

    @mcp.tool()
    async def search_code(query: str, project_id: Optional[str] = None, top_k: Optional[int] = None) -> dict:
        """
        Search indexed code by semantic similarity.

        Args:
            query: Natural language query to search for in code
            project_id: Project to search within (default: DEFAULT_PROJECT_ID, else all projects)
            top_k: Number of results to return (default: 5)

        Returns:
            Dictionary with the matching chunks, their file paths, line ranges and scores
        """
        if not query:
            return {"error": "Query is required", "results": []}

        project_id = resolve_project(project_id)
        top_k = top_k or config.get("mcp", "default_top_k", default=5)
        try:
            results = await context.search(query, top_k, project_id)
        except Exception as e:
            logger.error(f"Search failed: {e}", exc_info=True)
            return {"error": str(e), "results": []}

        logger.info(f"Search for '{query}' in {project_id or 'all projects'} returned {len(results)} results")
        return {
            "query": query,
            "project_id": project_id,
            "count": len(results),
            "results": [
                {
                    "project_id": result.project_id,
                    "path": result.file_path,
                    "start_line": result.metadata.start_line,
                    "end_line": result.metadata.end_line,
                    "code": result.content,
                    "score": round(result.score, 4),
                }
                for result in results
            ],
        }

    @mcp.tool()
    async def index_codebase(
        project_id: Optional[str] = None,
        directory_path: Optional[str] = None,
        exclude_patterns: Optional[list[str]] = None,
    ) -> dict:
        """
        Fully index a directory into a project, replacing the chunks of every file.

        Args:
            project_id: Project identifier (default: DEFAULT_PROJECT_ID)
            directory_path: Directory to index (default: DEFAULT_DIRECTORY_PATH)
            exclude_patterns: Additional gitignore-style patterns to exclude

        Returns:
            Dictionary with the job id and indexing counters
        """
        return await run_job(JobType.INDEX, project_id, directory_path, exclude_patterns)

    @mcp.tool()
    async def update_project(
        project_id: Optional[str] = None,
        directory_path: Optional[str] = None,
        exclude_patterns: Optional[list[str]] = None,
    ) -> dict:
        """
        Re-index only the files that changed since the last run.

        Args:
            project_id: Project identifier (default: DEFAULT_PROJECT_ID)
            directory_path: Directory to scan for changes (default: DEFAULT_DIRECTORY_PATH)
            exclude_patterns: Additional gitignore-style patterns to exclude

        Returns:
            Dictionary with the job id, counters and skipped/updated/added/deleted stats
        """
        return await run_job(JobType.UPDATE, project_id, directory_path, exclude_patterns)

    @mcp.tool()
    async def list_projects() -> dict:
        """
        List all indexed projects with their document counts.

        Returns:
            Dictionary with one entry per project
        """
        try:
            projects = await asyncio.to_thread(context.store.list_projects)
        except Exception as e:
            logger.error(f"Failed to list projects: {e}", exc_info=True)
            return {"error": str(e), "projects": []}
        return {
            "count": len(projects),
            "projects": [project.model_dump(mode="json") for project in projects],
        }

    @mcp.tool()
    async def delete_project(project_id: str) -> dict:
        """
        Delete a project and all of its indexed data.

        Args:
            project_id: Project to delete
        """
        try:
            deleted = await asyncio.to_thread(context.store.delete_project, project_id)
        except Exception as e:
            logger.error(f"Failed to delete project: {e}", exc_info=True)
            return {"error": str(e)}
        return {"project_id": project_id, "deleted_count": deleted}

    @mcp.tool()
    async def get_project_stats(project_id: str) -> dict:
        """
        Get document and file counts for a project.

        Args:
            project_id: Project to inspect
        """
        try:
            stats = await asyncio.to_thread(context.store.get_project_stats, project_id)
        except Exception as e:
            logger.error(f"Failed to get project stats: {e}", exc_info=True)
            return {"error": str(e)}
        return stats.model_dump()

    @mcp.tool()
    def get_job_status(job_id: str) -> dict:
        """
        Get the status, progress and recent log of an indexing job.

        Args:
            job_id: Job identifier returned by index_codebase or update_project
        """
        job = context.jobs.get_job(job_id)
        if job is None:
            return {"error": f"Job not found: {job_id}"}
        return job.model_dump(mode="json")

    @mcp.resource("ctxvault://project/{project_id}")
    async def project_resource(project_id: str) -> str:
        """Statistics of an indexed project as JSON."""
        stats = await asyncio.to_thread(context.store.get_project_stats, project_id)
        return stats.model_dump_json(indent=2)

    return mcp


def main():
    """Entry point for the MCP server."""
    parser = argparse.ArgumentParser(
        description="ctxvault MCP server for semantic code search"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to config.toml (default: ~/.ctxvault/config.toml)"
    )
    parser.add_argument(
        "--offline",
        action="store_true",
        help="Do not load the embedding model; use fallback vectors"
    )

    args = parser.parse_args()

    config = Config(args.config)
    setup_logging_from_config(config)
    context = VaultContext.from_config(config, offline=args.offline)

    # Warm the model in the background so the first search is fast
    threading.Thread(target=context.embeddings.warm_up, daemon=True).start()

    logger.info("Starting ctxvault MCP server...")
    create_server(context).run()


if __name__ == "__main__":
    main()
