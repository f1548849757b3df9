import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from bitcoin_monitor.api.routes import router
from bitcoin_monitor.core.config import Settings
from bitcoin_monitor.core.node import BitcoinNode, NodeRpcError
from bitcoin_monitor.visualizer.pipeline import MempoolVisualizer

logger = logging.getLogger("bitcoin_monitor.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Load configuration
    settings = Settings.from_env()
    logging.getLogger("bitcoin_monitor").setLevel(settings.log_level)

    nodes = [BitcoinNode.from_credential(c, timeout=settings.rpc_timeout) for c in settings.nodes]

    # Caches live as long as the process
    app.state.settings = settings
    app.state.visualizer = MempoolVisualizer(nodes, settings=settings)
    logger.info(f"Monitoring {len(nodes)} node(s): {', '.join(n.name for n in nodes) or '-'}")

    yield

    for node in nodes:
        await node.aclose()


app = FastAPI(
    title="Bitcoin Monitor - Mempool Visualizer API",
    description="Categorized mempool view and recent blocks of monitored Bitcoin nodes",
    version="0.1.0",
    lifespan=lifespan,
)

# Allow CORS for easy frontend integration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routes
app.include_router(router)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    message = "; ".join(
        f"Invalid {'.'.join(str(p) for p in err['loc'] if p != 'body') or 'body'}: {err['msg']}"
        for err in exc.errors()
    )
    return _error(400, message)


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return _error(400, str(exc))


@app.exception_handler(NodeRpcError)
async def node_error_handler(request: Request, exc: NodeRpcError):
    logger.error(f"{request.url.path} failed: node RPC error: {exc}")
    return _error(502, str(exc))


@app.exception_handler(httpx.HTTPError)
async def transport_error_handler(request: Request, exc: httpx.HTTPError):
    logger.error(f"{request.url.path} failed: {exc!r}")
    return _error(502, f"Node unreachable: {str(exc) or type(exc).__name__}")


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"{request.url.path} failed: {exc!r}")
    return _error(500, "Internal server error")


@app.get("/health")
async def health_check():
    """Simple health check endpoint."""
    return {"status": "ok"}
