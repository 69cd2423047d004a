"""
HTTP trigger for the orchestrator.

`SchedulerEndpoint.router()` builds a FastAPI router whose routes all
depend on the bearer check, so no task work starts for an unauthenticated
request; `SchedulerEndpoint.app()` wraps it in an application that uvicorn
can serve. Error responses share the `{"success": false, "error": ...}`
body of the success payloads.

Routes:
    POST /scheduler/dispatch                  run whatever is due now
    POST /scheduler/tasks/{name}[?force=true] run a single task
    GET  /scheduler/vacation                  vacation flag status
    POST /scheduler/vacation?enabled=<bool>   set the vacation flag
"""

from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..errors import AuthorizationError, SchedulerDisabledError
from .auth import verify_bearer_token
from .orchestrator import Orchestrator
from .state import SchedulerStateStore

logger = structlog.get_logger(__name__)

PREFIX = "/scheduler"


class SchedulerEndpoint:
    """Routes authenticated trigger requests to the orchestrator."""

    def __init__(self, orchestrator: Orchestrator, state_store: SchedulerStateStore,
                 secret: Optional[str]):
        self.orchestrator = orchestrator
        self.state_store = state_store
        self.secret = secret
        if not secret:
            logger.warning("No scheduler auth token configured, trigger endpoint disabled")

    def authorize(self, request: Request,
                  authorization: Optional[str] = Header(default=None)) -> None:
        """
        Bearer check run before every route.

        Raises:
            HTTPException: 503 when no secret is configured, 401 on a bad token
        """
        try:
            verify_bearer_token(authorization, self.secret)
        except SchedulerDisabledError as e:
            raise HTTPException(status_code=503, detail=str(e))
        except AuthorizationError:
            logger.warning("Rejected scheduler request", path=request.url.path)
            raise HTTPException(status_code=401, detail="Unauthorized",
                                headers={"WWW-Authenticate": "Bearer"})

    def router(self) -> APIRouter:
        router = APIRouter(prefix=PREFIX, dependencies=[Depends(self.authorize)])

        @router.api_route("/dispatch", methods=["GET", "POST"])
        def dispatch() -> dict[str, Any]:
            return self.orchestrator.dispatch().to_dict()

        @router.post("/tasks/{name}")
        def run_task(name: str, force: bool = False) -> dict[str, Any]:
            try:
                report = self.orchestrator.run_task(name, force=force)
            except KeyError:
                raise HTTPException(status_code=404, detail=f"Unknown task: {name}")
            return report.to_dict()

        @router.get("/vacation")
        def vacation_status() -> dict[str, Any]:
            return {"success": True, **self.state_store.status()}

        @router.post("/vacation")
        def set_vacation(enabled: Optional[bool] = None,
                         by: Optional[str] = None) -> dict[str, Any]:
            if enabled is None:
                raise HTTPException(status_code=400, detail="Missing 'enabled' parameter")
            state = self.state_store.set_vacation_mode(enabled, updated_by=by)
            return {"success": True, **state.to_doc()}

        return router

    def app(self) -> FastAPI:
        """Standalone application exposing only the trigger routes."""
        app = FastAPI(title="classmarket scheduler", docs_url=None, redoc_url=None,
                      openapi_url=None)
        app.include_router(self.router())

        @app.exception_handler(StarletteHTTPException)
        async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
            return JSONResponse({"success": False, "error": exc.detail},
                                status_code=exc.status_code, headers=exc.headers)

        @app.exception_handler(Exception)
        async def unexpected_error(request: Request, exc: Exception) -> JSONResponse:
            logger.error("Scheduler request failed", path=request.url.path, error=str(exc),
                         exc_info=exc)
            return JSONResponse({"success": False, "error": str(exc)}, status_code=500)

        return app
