"""Sandbox API routes.

A thin shell over :class:`SandboxOrchestrator`: orchestrator errors are
turned into HTTP responses by ``ErrorHandlingMiddleware``.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from agentpod.api.deps import get_orchestrator
from agentpod.db.models import SandboxStatus
from agentpod.engine.orchestrator import SandboxOrchestrator
from agentpod.models.schemas import (
    CommitRequest,
    CreateSandboxOptions,
    ExecRequest,
    LifecycleRequest,
    SandboxFilter,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["sandboxes"])


# ---------------------------------------------------------------------------
# Sandboxes
# ---------------------------------------------------------------------------

@router.post("/sandboxes", status_code=status.HTTP_201_CREATED)
async def create_sandbox(
    req: CreateSandboxOptions,
    orch: SandboxOrchestrator = Depends(get_orchestrator),
):
    return await orch.create_sandbox(req)


@router.get("/sandboxes")
async def list_sandboxes(
    user_id: str | None = None,
    sandbox_status: list[SandboxStatus] | None = Query(default=None, alias="status"),
    orch: SandboxOrchestrator = Depends(get_orchestrator),
):
    return await orch.list_sandboxes(SandboxFilter(user_id=user_id, status=sandbox_status))


@router.get("/sandboxes/{sandbox_id}")
async def get_sandbox(sandbox_id: str, orch: SandboxOrchestrator = Depends(get_orchestrator)):
    sandbox = await orch.get_sandbox(sandbox_id)
    if sandbox is None:
        raise HTTPException(status_code=404, detail="Sandbox not found")
    return sandbox


@router.get("/sandboxes/{sandbox_id}/info")
async def get_sandbox_info(sandbox_id: str, orch: SandboxOrchestrator = Depends(get_orchestrator)):
    return await orch.get_sandbox_info(sandbox_id)


@router.delete("/sandboxes/{sandbox_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_sandbox(
    sandbox_id: str,
    delete_repo: bool = False,
    remove_volumes: bool = False,
    orch: SandboxOrchestrator = Depends(get_orchestrator),
):
    await orch.delete_sandbox(sandbox_id, delete_repo=delete_repo, remove_volumes=remove_volumes)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

@router.post("/sandboxes/{sandbox_id}/start")
async def start_sandbox(sandbox_id: str, orch: SandboxOrchestrator = Depends(get_orchestrator)):
    return await orch.start_sandbox(sandbox_id)


@router.post("/sandboxes/{sandbox_id}/stop")
async def stop_sandbox(
    sandbox_id: str,
    req: LifecycleRequest | None = None,
    orch: SandboxOrchestrator = Depends(get_orchestrator),
):
    return await orch.stop_sandbox(sandbox_id, timeout=req.timeout if req else None)


@router.post("/sandboxes/{sandbox_id}/restart")
async def restart_sandbox(
    sandbox_id: str,
    req: LifecycleRequest | None = None,
    orch: SandboxOrchestrator = Depends(get_orchestrator),
):
    return await orch.restart_sandbox(sandbox_id, timeout=req.timeout if req else None)


@router.post("/sandboxes/{sandbox_id}/pause")
async def pause_sandbox(sandbox_id: str, orch: SandboxOrchestrator = Depends(get_orchestrator)):
    return await orch.pause_sandbox(sandbox_id)


@router.post("/sandboxes/{sandbox_id}/unpause")
async def unpause_sandbox(sandbox_id: str, orch: SandboxOrchestrator = Depends(get_orchestrator)):
    return await orch.unpause_sandbox(sandbox_id)


# ---------------------------------------------------------------------------
# Runtime queries and commands
# ---------------------------------------------------------------------------

@router.get("/sandboxes/{sandbox_id}/status")
async def get_sandbox_status(sandbox_id: str, orch: SandboxOrchestrator = Depends(get_orchestrator)):
    return await orch.get_sandbox_status(sandbox_id)


@router.get("/sandboxes/{sandbox_id}/logs")
async def get_sandbox_logs(
    sandbox_id: str,
    tail: int | None = Query(default=None, ge=0),
    orch: SandboxOrchestrator = Depends(get_orchestrator),
):
    return {"lines": await orch.get_sandbox_logs(sandbox_id, tail=tail)}


@router.get("/sandboxes/{sandbox_id}/stats")
async def get_sandbox_stats(sandbox_id: str, orch: SandboxOrchestrator = Depends(get_orchestrator)):
    return await orch.get_sandbox_stats(sandbox_id)


@router.post("/sandboxes/{sandbox_id}/exec")
async def exec_command(
    sandbox_id: str,
    req: ExecRequest,
    orch: SandboxOrchestrator = Depends(get_orchestrator),
):
    return await orch.exec(
        sandbox_id, req.command, working_dir=req.working_dir, env=req.env, user=req.user
    )


# ---------------------------------------------------------------------------
# Git
# ---------------------------------------------------------------------------

@router.post("/sandboxes/{sandbox_id}/git/commit")
async def commit_changes(
    sandbox_id: str,
    req: CommitRequest,
    orch: SandboxOrchestrator = Depends(get_orchestrator),
):
    return await orch.commit_changes(sandbox_id, req.message, author=req.author)


@router.get("/sandboxes/{sandbox_id}/git/status")
async def get_git_status(sandbox_id: str, orch: SandboxOrchestrator = Depends(get_orchestrator)):
    return await orch.get_git_status(sandbox_id)


@router.get("/sandboxes/{sandbox_id}/git/log")
async def get_git_log(
    sandbox_id: str,
    limit: int | None = Query(default=None, ge=1),
    orch: SandboxOrchestrator = Depends(get_orchestrator),
):
    return await orch.get_git_log(sandbox_id, limit=limit)
