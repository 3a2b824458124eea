"""代理 HTTP 服务。

- GET  /api/health   -> {"ok": true, "time": ISO8601}
- POST /api/respond  -> 200 {kind, document|text} / 400 / 500 {"error": ...}
"""

from datetime import datetime, timezone
from typing import Any, Dict
import json
import logging

from fastapi import Depends, FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from study_core.api.dispatcher import ResponseDispatcher
from study_core.api.schemas import parse_respond_request
from study_core.api.service import get_default_dispatcher
from study_core.config.settings import settings
from study_core.domain.exceptions import BusinessError, InvalidRequest
from study_core.infrastructure.logging.logger import logger


UPSTREAM_ERROR_MESSAGE = "Server error calling the model"


def create_app() -> FastAPI:
    app = FastAPI(title="StudyTools API", version="1.0.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(InvalidRequest)
    async def _invalid_request(request: Request, exc: InvalidRequest) -> JSONResponse:
        logger.info("Rejected request body", extra={"extra": {"path": request.url.path, "code": exc.code}})
        return JSONResponse(status_code=400, content={"error": exc.message})

    @app.exception_handler(BusinessError)
    async def _business_error(request: Request, exc: BusinessError) -> JSONResponse:
        logger.error(
            f"Request failed: {exc.message}",
            extra={"extra": {"path": request.url.path, "code": exc.code}},
        )
        status = exc.http_status if exc.http_status >= 500 else 500
        return JSONResponse(status_code=status, content={"error": f"{UPSTREAM_ERROR_MESSAGE}: {exc.message}"})

    @app.exception_handler(Exception)
    async def _unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error", extra={"extra": {"path": request.url.path}})
        return JSONResponse(status_code=500, content={"error": UPSTREAM_ERROR_MESSAGE})

    @app.get("/api/health")
    def health() -> Dict[str, Any]:
        return {"ok": True, "time": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")}

    @app.post("/api/respond")
    async def respond(
        request: Request,
        dispatcher: ResponseDispatcher = Depends(get_default_dispatcher),
    ) -> Dict[str, Any]:
        raw = await request.body()
        try:
            body = json.loads(raw or b"null")
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise InvalidRequest()
        req = parse_respond_request(body)
        # 上游调用是同步 httpx，放到线程池里执行
        result = await run_in_threadpool(dispatcher.respond, req)
        return result.model_dump()

    return app


app = create_app()


def main() -> None:
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="[%(asctime)s] %(levelname)s - %(message)s")
    uvicorn.run(app, host=settings.server_host, port=settings.server_port)


if __name__ == "__main__":
    main()
