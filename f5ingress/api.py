"""FastAPI REST API exposing desired and current state."""

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import ValidationError

from . import __version__
from .bigip import BigIPClient
from .current import build_current_state
from .desired import build_desired_state
from .errors import F5IngressError
from .kube import KubeClusterClient
from .logging_config import get_logger, log_api_request, log_api_response, log_function_entry, log_function_exit
from .models import ControllerConfig, VirtualServer
from .serialize import state_to_data

logger = get_logger(__name__)

app = FastAPI(
    title="f5ingress",
    description="Desired and current BIG-IP virtual server state for Kubernetes Ingresses",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all HTTP requests and responses."""
    start_time = asyncio.get_event_loop().time()

    log_api_request(logger, request.method, str(request.url.path),
                    client_ip=request.client.host if request.client else "unknown",
                    user_agent=request.headers.get("user-agent", "unknown"))

    response = await call_next(request)

    duration = asyncio.get_event_loop().time() - start_time
    log_api_response(logger, request.method, str(request.url.path),
                     response.status_code,
                     duration_ms=round(duration * 1000, 2))

    return response


class StateController:
    """Holds the most recently computed desired and current state.

    A refresh replaces both states together, and only when both were
    computed; a failed refresh leaves the previous state in place.
    """

    def __init__(self,
                 config: ControllerConfig,
                 cluster_factory: Callable[..., Any] = KubeClusterClient,
                 adc_factory: Callable[..., Any] = BigIPClient):
        self.config = config
        self._cluster_factory = cluster_factory
        self._adc_factory = adc_factory
        self.desired: Optional[List[VirtualServer]] = None
        self.current: Optional[List[VirtualServer]] = None
        self.last_refresh: Optional[datetime] = None
        self.last_error: Optional[str] = None
        self._lock = asyncio.Lock()

    async def refresh(self) -> None:
        """Recompute desired and current state."""
        async with self._lock:
            log_function_entry(logger, "refresh", partition=self.config.partition)
            try:
                async with self._cluster_factory(self.config.cluster) as cluster:
                    desired = await build_desired_state(cluster)
                async with self._adc_factory(self.config.bigip.with_env_defaults()) as adc:
                    current = await build_current_state(adc, self.config.engine)
            except (F5IngressError, ValidationError) as e:
                self.last_error = str(e)
                log_function_exit(logger, "refresh", status="error", error=str(e))
                raise

            self.desired = desired
            self.current = current
            self.last_refresh = datetime.now(timezone.utc)
            self.last_error = None
            log_function_exit(logger, "refresh", status="success",
                              desired=len(desired), current=len(current))


controller: Optional[StateController] = None


async def get_controller() -> StateController:
    """Get the global StateController instance."""
    if controller is None:
        raise HTTPException(status_code=503, detail="Controller not initialized")
    return controller


def initialize_controller(config: ControllerConfig, **factories: Any) -> StateController:
    """Initialize the global StateController instance."""
    global controller
    controller = StateController(config, **factories)
    logger.info("Controller initialized",
                partition=config.partition,
                refresh_interval=config.refresh_interval)
    return controller


def _require(state: Optional[List[VirtualServer]], which: str) -> List[Dict[str, Any]]:
    if state is None:
        raise HTTPException(status_code=503, detail=f"{which} state not computed yet")
    return state_to_data(state)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "f5ingress"}


@app.get("/state/desired")
async def get_desired_state():
    """Desired virtual servers derived from the cluster."""
    ctrl = await get_controller()
    return _require(ctrl.desired, "Desired")


@app.get("/state/current")
async def get_current_state():
    """Virtual servers currently configured in the partition."""
    ctrl = await get_controller()
    return _require(ctrl.current, "Current")


@app.get("/state")
async def get_state():
    """Desired and current state with refresh metadata."""
    ctrl = await get_controller()
    return {
        "partition": ctrl.config.partition,
        "last_refresh": ctrl.last_refresh.isoformat() if ctrl.last_refresh else None,
        "last_error": ctrl.last_error,
        "desired": _require(ctrl.desired, "Desired"),
        "current": _require(ctrl.current, "Current"),
    }


@app.post("/refresh")
async def trigger_refresh():
    """Recompute desired and current state now."""
    ctrl = await get_controller()
    logger.info("Manual refresh triggered")

    try:
        await ctrl.refresh()
    except (F5IngressError, ValidationError) as e:
        logger.error("Manual refresh failed", error=str(e))
        raise HTTPException(status_code=502, detail=f"Refresh failed: {e}")

    return {
        "status": "success",
        "desired_count": len(ctrl.desired),
        "current_count": len(ctrl.current),
    }


async def periodic_refresh():
    """Background task to periodically recompute state."""
    logger.info("Starting periodic refresh background task")

    while controller is not None:
        try:
            await controller.refresh()
            logger.info("Periodic refresh completed",
                        desired=len(controller.desired),
                        current=len(controller.current))
        except (F5IngressError, ValidationError) as e:
            logger.error("Periodic refresh failed, keeping previous state", error=str(e))
        except Exception as e:
            logger.error("Unexpected error in periodic refresh", error=str(e), error_type=type(e).__name__)

        await asyncio.sleep(controller.config.refresh_interval)


@app.on_event("startup")
async def startup_event():
    """Start the refresh loop on application startup."""
    if controller:
        app.state.refresh_task = asyncio.create_task(periodic_refresh())


@app.on_event("shutdown")
async def shutdown_event():
    """Stop the refresh loop."""
    task = getattr(app.state, "refresh_task", None)
    if task:
        task.cancel()
    logger.info("Shutting down f5ingress API")
