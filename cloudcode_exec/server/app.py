"""
HTTP and websocket surface of the execution service.
"""

from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Query, Request, WebSocket
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..core.config import ServiceConfig
from ..core.exceptions import (
    CloudCodeExecError,
    InvalidProjectIdError,
    RunRequestValidationError,
    UnsupportedLanguageError,
    format_error_message,
)
from ..core.locks import KeyedLock
from ..core.logging import get_logger
from ..environment.installer import DependencyInstaller
from ..environment.probe import check_environment
from ..environment.provisioner import EnvironmentProvisioner
from ..environment.workspace import WorkspaceLayout
from ..execution.engine import ExecutionEngine
from ..execution.models import RunRequest
from ..languages import supported_languages
from ..terminal.manager import TerminalSessionManager
from .auth import Authorizer, allow_identified, get_user_id, require_project_access
from .hub import TerminalHub

logger = get_logger(__name__)


class RunCodeBody(BaseModel):
    projectId: str
    language: str
    code: str
    input: str | None = None
    timeoutSeconds: int | None = None
    dependencies: list[str] = Field(default_factory=list)


class InstallBody(BaseModel):
    language: str
    dependencies: list[str] = Field(default_factory=list)


class ServiceContainer:
    """The core components one app instance serves."""

    def __init__(self, config: ServiceConfig):
        self.config = config
        self.layout = WorkspaceLayout(config.base_path)
        self.provisioner = EnvironmentProvisioner(self.layout, config.provisioning, KeyedLock())
        self.installer = DependencyInstaller(self.provisioner, config.install)
        self.engine = ExecutionEngine(self.provisioner, self.installer, config.execution)
        self.terminals = TerminalSessionManager(self.layout, config.terminal)


def _bad_request(error: Exception) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": format_error_message(error)})


def create_app(config: ServiceConfig | None = None, authorizer: Authorizer | None = None) -> FastAPI:
    """
    Create a configured FastAPI app.

    Args:
        config: Service configuration; defaults are used when omitted
        authorizer: ``(user_id, project_id) -> bool`` access decision

    Returns:
        The application, with its components on ``app.state.services``
    """
    config = config or ServiceConfig()
    services = ServiceContainer(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Serving projects from {config.base_path}")
        yield
        # Shells have no timeout of their own.
        await run_in_threadpool(services.terminals.close_all)

    app = FastAPI(title="cloudcode-exec", lifespan=lifespan)
    app.state.config = config
    app.state.services = services
    app.state.authorizer = authorizer or allow_identified
    hub = TerminalHub(services.terminals, app.state.authorizer)

    @app.exception_handler(RunRequestValidationError)
    async def _validation_error(request: Request, exc: RunRequestValidationError):
        return _bad_request(exc)

    @app.exception_handler(UnsupportedLanguageError)
    async def _language_error(request: Request, exc: UnsupportedLanguageError):
        return _bad_request(exc)

    @app.exception_handler(InvalidProjectIdError)
    async def _project_id_error(request: Request, exc: InvalidProjectIdError):
        return _bad_request(exc)

    @app.exception_handler(CloudCodeExecError)
    async def _service_error(request: Request, exc: CloudCodeExecError):
        logger.warning(f"Request failed: {exc}")
        return JSONResponse(status_code=500, content={"error": format_error_message(exc)})

    @app.get("/health")
    async def health():
        """Liveness probe."""
        return {"status": "ok", "activeSessions": len(services.terminals.active_sessions())}

    @app.get("/api/execution/languages")
    async def languages():
        return supported_languages()

    @app.post("/api/execution/run")
    async def run_code(body: RunCodeBody, request: Request, user_id: str = Depends(get_user_id)):
        """Run code once and return the captured result."""
        require_project_access(request, user_id, body.projectId)
        run_request = RunRequest(
            project_id=body.projectId,
            language=body.language,
            source_text=body.code,
            stdin=body.input,
            timeout_seconds=body.timeoutSeconds,
            dependencies=list(body.dependencies),
        )
        try:
            result = await run_in_threadpool(services.engine.run, run_request)
        except ValueError as e:
            return _bad_request(e)
        return result.to_dict()

    @app.get("/api/dependencies/environment")
    async def environment_status(user_id: str = Depends(get_user_id)):
        status = await run_in_threadpool(check_environment, config)
        return status.to_dict()

    @app.get("/api/dependencies/project/{project_id}/environment")
    async def project_environment(
        project_id: str,
        request: Request,
        language: str | None = Query(default=None),
        user_id: str = Depends(get_user_id),
    ):
        require_project_access(request, user_id, project_id)
        environment = await run_in_threadpool(services.provisioner.describe, project_id, language)
        return environment.to_dict()

    @app.post("/api/dependencies/project/{project_id}/install")
    async def install_dependencies(
        project_id: str,
        body: InstallBody,
        request: Request,
        user_id: str = Depends(get_user_id),
    ):
        """Install dependencies one by one; partial failures are reported per item."""
        require_project_access(request, user_id, project_id)
        try:
            result = await run_in_threadpool(
                services.installer.install, project_id, body.language, body.dependencies
            )
        except ValueError as e:
            return _bad_request(e)
        return result.to_dict()

    @app.post("/api/dependencies/project/{project_id}/venv")
    async def create_venv(project_id: str, request: Request, user_id: str = Depends(get_user_id)):
        require_project_access(request, user_id, project_id)
        result = await run_in_threadpool(services.provisioner.create_python_venv, project_id)
        return result.to_dict()

    @app.post("/api/dependencies/project/{project_id}/init")
    async def init_node(project_id: str, request: Request, user_id: str = Depends(get_user_id)):
        require_project_access(request, user_id, project_id)
        result = await run_in_threadpool(services.provisioner.init_node_project, project_id)
        return result.to_dict()

    @app.websocket("/hubs/terminal")
    async def terminal_hub(websocket: WebSocket, user_id: str | None = Query(default=None)):
        """Interactive terminal sessions for one caller."""
        user_id = (user_id or websocket.headers.get("x-user-id") or "").strip()
        if not user_id:
            await websocket.close(code=1008, reason="Missing user_id")
            return
        await hub.serve(websocket, user_id)

    return app
