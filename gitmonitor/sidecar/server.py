"""
gitmonitor - FastAPI Server

Serves the monitored repository tree and its actions to a local frontend.
"""

import argparse
import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..core.config import ConfigStore
from ..core.models import iter_forest
from ..core.orchestrator import ScanOrchestrator
from ..utils.file_watcher import GitStateWatcher
from .routes import cache, git, projects, scan, settings

logger = logging.getLogger(__name__)


def _attach_watcher(orchestrator: ScanOrchestrator) -> GitStateWatcher:
    """Turn git state changes into light refreshes on the running loop."""
    loop = asyncio.get_running_loop()
    watcher = GitStateWatcher(
        on_change=lambda repos: loop.call_soon_threadsafe(orchestrator.request_light_refresh),
    )
    orchestrator.subscribe(
        lambda tree: watcher.sync(node.path for node in iter_forest(tree) if node.is_repository)
    )
    watcher.sync(node.path for node in orchestrator.repositories())
    watcher.start()
    return watcher


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load the cache or scan in the background; stop watchers on exit."""
    orchestrator: ScanOrchestrator = app.state.orchestrator
    watcher = _attach_watcher(orchestrator) if orchestrator.config.watch_repositories else None
    startup = asyncio.create_task(orchestrator.startup())
    app.state.startup_task = startup
    yield
    if not startup.done():
        startup.cancel()
    try:
        await startup
    except asyncio.CancelledError:
        pass
    except Exception:
        logger.exception("Startup scan failed")
    await orchestrator.shutdown()
    if watcher:
        watcher.stop()


def create_app(orchestrator: ScanOrchestrator) -> FastAPI:
    app = FastAPI(
        title="gitmonitor",
        description="Git working tree monitor sidecar",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost", "http://127.0.0.1"],
        allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(projects.router, prefix="/api/projects", tags=["projects"])
    app.include_router(scan.router, prefix="/api/scan", tags=["scan"])
    app.include_router(git.router, prefix="/api/git", tags=["git"])
    app.include_router(settings.router, prefix="/api/settings", tags=["settings"])
    app.include_router(cache.router, prefix="/api/cache", tags=["cache"])

    @app.get("/health")
    def health():
        """Health check endpoint"""
        return {"status": "ok", "state": orchestrator.state.value}

    @app.get("/")
    def root():
        return {
            "name": "gitmonitor",
            "version": __version__,
            "docs": "/docs",
        }

    return app


def run(host: str = "127.0.0.1", port: int = 9876, config_path: Path | None = None) -> None:
    """Build the orchestrator from stored settings and serve it."""
    orchestrator = ScanOrchestrator.from_config_store(ConfigStore(config_path))
    app = create_app(orchestrator)

    logger.info("Starting gitmonitor sidecar on %s:%s", host, port)

    log_config = uvicorn.config.LOGGING_CONFIG
    log_config["formatters"]["access"]["fmt"] = "%(asctime)s %(levelprefix)s %(client_addr)s - \"%(request_line)s\" %(status_code)s"
    log_config["formatters"]["default"]["fmt"] = "%(asctime)s %(levelprefix)s %(message)s"
    log_config["formatters"]["access"]["datefmt"] = "%H:%M:%S"
    log_config["formatters"]["default"]["datefmt"] = "%H:%M:%S"

    # Single worker: the live tree exists only in this process.
    uvicorn.run(app, host=host, port=port, log_level="info", log_config=log_config)


def main():
    """Main entry point for the sidecar"""
    parser = argparse.ArgumentParser(description="gitmonitor sidecar server")
    parser.add_argument(
        "--port",
        type=int,
        default=9876,
        help="Port to run the server on (default: 9876)",
    )
    parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to config.json (default: under GITMONITOR_HOME)",
    )
    args = parser.parse_args()
    run(host=args.host, port=args.port, config_path=args.config)


if __name__ == "__main__":
    main()
