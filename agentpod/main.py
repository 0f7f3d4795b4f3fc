"""AgentPod application entry point."""

from __future__ import annotations

import argparse
import logging
import logging.handlers
import os
import sys
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI

from agentpod.api.deps import init_orchestrator
from agentpod.catalog import ResourceCatalog, seed_catalog
from agentpod.config import AppConfig, ProviderConfig, default_providers, load_config
from agentpod.db.session import close_db, get_session_factory, init_db, init_engine
from agentpod.engine.orchestrator import SandboxOrchestrator
from agentpod.middleware import setup_middleware
from agentpod.providers.registry import ProviderRegistry
from agentpod.repositories import SqlCatalogRepository, SqlSandboxRepository

load_dotenv()

logger = logging.getLogger("agentpod")


def _setup_logging(config: AppConfig) -> None:
    log_dir = Path(config.logging.dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=getattr(logging, config.logging.level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.handlers.RotatingFileHandler(
                log_dir / "agentpod.log", maxBytes=10_000_000, backupCount=5
            ),
        ],
    )


def _provider_configs(config: AppConfig) -> tuple[ProviderConfig, ProviderConfig]:
    """Runtime and git provider configs, with defaults for missing sections."""
    defaults = default_providers()
    runtime = config.providers.get("runtime") or defaults["runtime"]
    git = config.providers.get("git") or defaults["git"]
    # The runtime bind-mounts the git provider's working copies.
    repos_dir = git.config.get("repos_dir")
    if repos_dir and "repos_dir" not in runtime.config:
        runtime = runtime.model_copy(
            update={"config": {**runtime.config, "repos_dir": os.path.abspath(repos_dir)}}
        )
    return runtime, git


@asynccontextmanager
async def lifespan(app: FastAPI):
    """App lifespan: initialize DB, catalog, providers, orchestrator."""
    config: AppConfig = app.state.config
    _setup_logging(config)
    logger.info("Starting AgentPod...")

    # Database
    init_engine(config.database.url)
    await init_db()
    session_factory = get_session_factory()
    async with session_factory() as db:
        await seed_catalog(db)
    logger.info("Database initialized")

    # Providers
    registry = ProviderRegistry()
    runtime_cfg, git_cfg = _provider_configs(config)
    runtime = await registry.runtime(runtime_cfg)
    git = await registry.git(git_cfg)

    # Orchestrator
    orchestrator = SandboxOrchestrator(
        sandboxes=SqlSandboxRepository(session_factory),
        catalog=ResourceCatalog(SqlCatalogRepository(session_factory)),
        runtime=runtime,
        git=git,
        settings=config.sandbox,
    )
    init_orchestrator(orchestrator)
    logger.info("Orchestrator ready")

    yield

    # Shutdown
    init_orchestrator(None)
    await runtime.cleanup()
    await git.cleanup()
    await close_db()
    logger.info("AgentPod shutdown complete")


def create_app(config_path: str = "agentpod.yaml") -> FastAPI:
    config = load_config(config_path)

    app = FastAPI(title="AgentPod", version="0.1.0", lifespan=lifespan)
    app.state.config = config

    from agentpod.api.sandboxes import router as sandboxes_router
    from agentpod.api.system import router as system_router

    app.include_router(system_router)
    app.include_router(sandboxes_router)

    setup_middleware(app)
    return app


def cli():
    parser = argparse.ArgumentParser(prog="agentpod", description="AgentPod - sandbox orchestration")
    sub = parser.add_subparsers(dest="command")

    serve_parser = sub.add_parser("serve", help="Start the AgentPod server")
    serve_parser.add_argument("--host", default=None)
    serve_parser.add_argument("--port", type=int, default=None)
    serve_parser.add_argument("--reload", action="store_true")
    serve_parser.add_argument("--config", default="agentpod.yaml")

    args = parser.parse_args()

    if args.command == "serve":
        config = load_config(args.config)
        host = args.host or config.server.host
        port = args.port or config.server.port
        # The factory re-reads the config path from the environment.
        os.environ["AGENTPOD_CONFIG"] = args.config
        uvicorn.run(
            "agentpod.main:app_from_env",
            factory=True,
            host=host,
            port=port,
            reload=args.reload or config.server.reload,
        )
    else:
        parser.print_help()


def app_from_env() -> FastAPI:
    """uvicorn factory honouring ``AGENTPOD_CONFIG``."""
    return create_app(os.environ.get("AGENTPOD_CONFIG", "agentpod.yaml"))


if __name__ == "__main__":
    cli()
