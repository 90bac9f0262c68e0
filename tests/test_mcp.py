"""
Unit tests for the MCP server.

Tests the tools registered by create_server against a real store and
fallback embeddings.
"""

import pytest

from ctxvault.mcp_server import create_server


@pytest.fixture
def server(vault):
    return create_server(vault)


def tool(server, name):
    """Underlying function of a registered tool."""
    return server._tool_manager.get_tool(name).fn


@pytest.mark.asyncio
async def test_tools_registered(server):
    names = {t.name for t in await server.list_tools()}

    assert names == {
        "search_code",
        "index_codebase",
        "update_project",
        "list_projects",
        "delete_project",
        "get_project_stats",
        "get_job_status",
    }


@pytest.mark.asyncio
async def test_index_then_search(server, sample_codebase):
    indexed = await tool(server, "index_codebase")(project_id="proj", directory_path=str(sample_codebase))

    assert "error" not in indexed
    assert indexed["files_processed"] == 5
    assert indexed["chunks_indexed"] > 0

    result = await tool(server, "search_code")(query="utility function", project_id="proj", top_k=2)

    assert result["count"] == 2
    first = result["results"][0]
    assert {"project_id", "path", "start_line", "end_line", "code", "score"} <= set(first)
    assert first["project_id"] == "proj"


@pytest.mark.asyncio
async def test_search_requires_query(server):
    result = await tool(server, "search_code")(query="")

    assert result["error"] == "Query is required"
    assert result["results"] == []


@pytest.mark.asyncio
async def test_search_uses_default_top_k(server, sample_codebase):
    await tool(server, "index_codebase")(project_id="proj", directory_path=str(sample_codebase))

    result = await tool(server, "search_code")(query="hello")

    assert result["count"] == 5


@pytest.mark.asyncio
async def test_index_requires_project_and_directory(server, sample_codebase):
    missing_project = await tool(server, "index_codebase")(directory_path=str(sample_codebase))
    missing_dir = await tool(server, "index_codebase")(project_id="proj")

    assert "Project ID is required" in missing_project["error"]
    assert "Directory path is required" in missing_dir["error"]


@pytest.mark.asyncio
async def test_defaults_from_config(vault, sample_codebase):
    vault.config.set("mcp", "default_project_id", value="default-proj")
    vault.config.set("mcp", "default_directory_path", value=str(sample_codebase))
    server = create_server(vault)

    indexed = await tool(server, "index_codebase")()
    searched = await tool(server, "search_code")(query="main entry")

    assert indexed["project_id"] == "default-proj"
    assert searched["project_id"] == "default-proj"
    assert all(r["project_id"] == "default-proj" for r in searched["results"])


@pytest.mark.asyncio
async def test_update_project_reports_delta(server, sample_codebase):
    await tool(server, "index_codebase")(project_id="proj", directory_path=str(sample_codebase))
    (sample_codebase / "new.md").write_text("# New\n")

    result = await tool(server, "update_project")(project_id="proj", directory_path=str(sample_codebase))

    assert result["delta_stats"]["added"] == 1
    assert result["delta_stats"]["skipped"] == 5


@pytest.mark.asyncio
async def test_failed_index_reports_error(server, temp_dir):
    result = await tool(server, "index_codebase")(project_id="proj", directory_path=str(temp_dir / "missing"))

    assert "does not exist" in result["error"]
    status = tool(server, "get_job_status")(job_id=result["job_id"])
    assert status["status"] == "failed"


@pytest.mark.asyncio
async def test_job_status(server, sample_codebase):
    indexed = await tool(server, "index_codebase")(project_id="proj", directory_path=str(sample_codebase))

    status = tool(server, "get_job_status")(job_id=indexed["job_id"])

    assert status["status"] == "completed"
    assert status["progress"] == 100
    assert "error" in tool(server, "get_job_status")(job_id="job_0_0")


@pytest.mark.asyncio
async def test_project_management_tools(server, sample_codebase):
    await tool(server, "index_codebase")(project_id="proj", directory_path=str(sample_codebase))

    listed = await tool(server, "list_projects")()
    assert listed["count"] == 1
    assert listed["projects"][0]["project_id"] == "proj"

    stats = await tool(server, "get_project_stats")(project_id="proj")
    assert stats["total_files"] == 5

    deleted = await tool(server, "delete_project")(project_id="proj")
    assert deleted["deleted_count"] == stats["total_documents"]

    listed = await tool(server, "list_projects")()
    assert listed["count"] == 0
