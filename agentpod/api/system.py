"""Health, runtime info and catalog routes."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from agentpod.api.deps import get_orchestrator
from agentpod.engine.orchestrator import SandboxOrchestrator

router = APIRouter(prefix="/api", tags=["system"])


@router.get("/health")
async def health(orch: SandboxOrchestrator = Depends(get_orchestrator)):
    runtime_ok = await orch.health_check()
    git_health = await orch.git.health_check()
    return {
        "status": "ok" if runtime_ok and git_health.healthy else "degraded",
        "runtime": {"healthy": runtime_ok},
        "git": {"healthy": git_health.healthy, "message": git_health.message},
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/docker/info")
async def docker_info(orch: SandboxOrchestrator = Depends(get_orchestrator)):
    return await orch.get_docker_info()


@router.get("/resource-tiers")
async def list_resource_tiers(orch: SandboxOrchestrator = Depends(get_orchestrator)):
    return await orch.catalog.list_resource_tiers()


@router.get("/flavors")
async def list_flavors(orch: SandboxOrchestrator = Depends(get_orchestrator)):
    return await orch.catalog.list_flavors()


@router.get("/addons")
async def list_addons(orch: SandboxOrchestrator = Depends(get_orchestrator)):
    return await orch.catalog.list_addons()
