import uvicorn
from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from .main_router import MainController
from ..state import State, state
from ..utils import log, stacktrace


async def handle_error(request: Request, call_next):
    try:
        response: Response = await call_next(request)
        return response
    except Exception as ex:
        log.error("Request failed", {"method": request.method, "url": str(request.url), "error": str(ex)})
        return JSONResponse(
            status_code=500,
            content={
                "message": str(ex),
                "method": request.method,
                "url": str(request.url),
                "stacktrace": stacktrace(ex),
            },
        )


def create_app(channel_state: State | None = None) -> FastAPI:
    main_controller = MainController(channel_state if channel_state is not None else state)
    app = FastAPI()
    app.add_middleware(BaseHTTPMiddleware, dispatch=handle_error)
    app.include_router(main_controller.router)
    return app


async def serve(host: str, port: int):
    """Serve the status app inside the running event loop until cancelled."""
    config = uvicorn.Config(create_app(), host=host, port=port, access_log=False, log_level="warning")
    server = uvicorn.Server(config)
    log.info("Status server listening", {"host": host, "port": port})
    await server.serve()
