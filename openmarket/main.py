# openmarket/main.py
from __future__ import annotations

import importlib
import importlib.util
import logging
import os
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from openmarket import models  # noqa: F401  (테이블 메타데이터 등록)
from openmarket.config.feature_flags import FEATURE_FLAGS
from openmarket.database import Base, engine

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

APP_VERSION = "1.0.0"


# Lifespan
@asynccontextmanager
async def lifespan(app: FastAPI):
    # ✅ DB 테이블 생성은 import 시점이 아니라 startup 시점에서
    if FEATURE_FLAGS.get("AUTO_CREATE_TABLES", True):
        try:
            Base.metadata.create_all(bind=engine)
        except Exception as e:
            logger.warning("Base.metadata.create_all failed: %s: %s", e.__class__.__name__, e)
    yield


app = FastAPI(title="Openmarket Settlement API", version=APP_VERSION, lifespan=lifespan)


# 예외 핸들러
@app.exception_handler(StarletteHTTPException)
async def http_exc_handler(request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail, "detail": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_exc_handler(request, exc: RequestValidationError):
    # 잘못된 요청 본문/쿼리 → 400
    return JSONResponse(
        status_code=400,
        content={"error": "요청 값이 올바르지 않습니다.", "detail": _validation_errors(exc)},
    )


def _validation_errors(exc: RequestValidationError) -> list:
    out = []
    for err in exc.errors():
        out.append({
            "loc": [str(x) for x in err.get("loc", ())],
            "msg": err.get("msg"),
            "type": err.get("type"),
        })
    return out


@app.exception_handler(Exception)
async def unhandled_exc_handler(request, exc: Exception):
    logger.exception("unhandled error %s %s", request.method, request.url.path)
    content = {"error": "서버 내부 오류가 발생했습니다."}
    if FEATURE_FLAGS.get("DEV_DEBUG_ERRORS"):
        content["detail"] = {
            "error": exc.__class__.__name__,
            "msg": str(exc),
            "where": f"{request.method} {request.url.path}",
            "trace_tail": traceback.format_exc().splitlines()[-1],
        }
    return JSONResponse(status_code=500, content=content)


# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Router include helper
def _include_router_safe(module_path: str, attr_candidates: tuple[str, ...], *, label: str):
    full_mod = f"openmarket.routers.{module_path}"
    if importlib.util.find_spec(full_mod) is None:
        logger.warning("Skip router [%s]: spec not found for '%s'", label, full_mod)
        return

    mod = importlib.import_module(full_mod)
    router_obj = None
    for name in attr_candidates:
        router_obj = getattr(mod, name, None)
        if router_obj is not None:
            break

    if router_obj is None:
        logger.warning("Skip router [%s]: none of attrs %s found in %s", label, attr_candidates, full_mod)
        return

    app.include_router(router_obj)
    logger.info("Mounted router [%s] from %s", label, full_mod)


# --------------------------------------------------
# 💰 정산
# --------------------------------------------------
_include_router_safe("settlements", ("router",), label="settlements")


# Health/Version
@app.get("/")
def root():
    return {"message": "Openmarket Settlement API is running 🚀"}


@app.get("/health")
def health():
    return {"ok": True}


@app.get("/version")
def version():
    return {"app": "Openmarket Settlement API", "version": APP_VERSION}
