from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator

import structlog
import uvicorn
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from iporesult.config import settings
from iporesult.logging import configure_logging
from iporesult.ratelimit import FixedWindowRateLimiter, run_reset_loop
from iporesult.schemas import (
    BulkCheckRequest,
    BulkCheckResponse,
    CaptchaErrorResponse,
    CaptchaResponse,
    CompaniesResponse,
    HealthResponse,
    SingleCheckResponse,
)
from iporesult.service import IpoResultError, ipo_result_service

log = structlog.get_logger(__name__)

rate_limiter = FixedWindowRateLimiter(
    max_requests=settings.rate_limit_max_requests,
    window_seconds=settings.rate_limit_window_seconds,
)


@contextlib.asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    configure_logging(verbose=settings.verbose, log_json=settings.log_json)
    reset_task = asyncio.create_task(run_reset_loop(rate_limiter))
    log.info("server.started", env=settings.app_env, upstream=settings.upstream_base_url)
    try:
        yield
    finally:
        reset_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await reset_task


app = FastAPI(title=settings.app_name, lifespan=lifespan)


@app.middleware("http")
async def limit_requests(request: Request, call_next):
    decision = rate_limiter.hit()
    if not decision.allowed:
        log.warning("rate_limit.rejected", count=decision.count, path=request.url.path)
        return JSONResponse(
            status_code=429,
            content={"success": False, "message": "Too many requests"},
            headers={"Retry-After": str(decision.retry_after)},
        )
    return await call_next(request)


# Outermost: wraps the rate limiter.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_error(_: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"field": ".".join(str(part) for part in err["loc"][1:]), "message": err["msg"]}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"success": False, "message": "Missing parameters", "errors": errors},
    )


@app.get('/', response_model=HealthResponse)
def root() -> HealthResponse:
    return HealthResponse(message="IPO Backend Running")


@app.get('/health')
def health() -> dict[str, str]:
    return {'status': 'ok', 'env': settings.app_env}


@app.get('/ipo/companies', response_model=CompaniesResponse)
def get_companies() -> CompaniesResponse:
    try:
        companies = ipo_result_service.load_companies()
    except IpoResultError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return CompaniesResponse(count=len(companies), companies=companies)


@app.get('/ipo/get-captcha', response_model=CaptchaResponse)
def get_captcha() -> CaptchaResponse:
    try:
        page = ipo_result_service.get_captcha()
    except IpoResultError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return CaptchaResponse(captcha_identifier=page.captcha_identifier, captcha_url=page.captcha_url)


@app.post('/ipo/bulk-check', response_model=BulkCheckResponse, response_model_exclude_none=True)
def bulk_check(request: BulkCheckRequest):
    try:
        if request.usercaptcha:
            outcome = ipo_result_service.bulk_check_with_captcha(
                request.company_id,
                request.boids,
                request.usercaptcha,
            )
        else:
            outcome = ipo_result_service.bulk_check_cached(request.company_id, request.boids)
    except IpoResultError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc

    if outcome.captcha_error:
        return JSONResponse(content=CaptchaErrorResponse().model_dump(by_alias=True))
    return BulkCheckResponse(count=outcome.count, results=outcome.results)


@app.get('/ipo/check', response_model=SingleCheckResponse, response_model_exclude_none=True)
def check_result(
    boid: str = Query(..., min_length=1),
    company_id: str = Query(..., min_length=1, alias="companyId"),
) -> SingleCheckResponse:
    try:
        result = ipo_result_service.check_single(boid, company_id)
    except IpoResultError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return SingleCheckResponse(
        boid=boid,
        company_id=company_id,
        allotted=result.allotted,
        message=result.message,
        cached=bool(result.cached),
    )


def run() -> None:
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
