import logging
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from revsync.api.v1.router import router as v1_router
from revsync.core.config import settings
from revsync.core.logging_config import configure_logging, log_request, structured_log
from revsync.core.prod_check import validate_production_config
from revsync.db.bootstrap import bootstrap_database
from revsync.db.session import SessionLocal, engine
from revsync.services.signal_detector import RevenueSignalDetector
from revsync.services.sync_service import SyncService, SyncWorkerPool

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name, version='1.0.0')

app.state.session_factory = SessionLocal
app.state.sync_service = SyncService(SessionLocal)
app.state.signal_detector = RevenueSignalDetector(SessionLocal)
app.state.worker_pool = SyncWorkerPool(
    app.state.sync_service,
    size=settings.sync_inprocess_workers,
    idle_sleep_seconds=settings.sync_worker_idle_sleep_seconds,
)

if settings.cors_origins and settings.cors_origins.strip() != '*':
    origins = [o.strip() for o in settings.cors_origins.split(',') if o.strip()]
else:
    origins = ['http://localhost:3000', 'http://127.0.0.1:3000']


def _cors_error_headers(request: Request) -> dict[str, str]:
    origin = request.headers.get('origin', '').strip()
    if not origin or origin not in origins:
        return {}
    return {
        'access-control-allow-origin': origin,
        'access-control-allow-credentials': 'true',
        'vary': 'Origin',
    }


app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)


def _trace_id(request: Request) -> str:
    return getattr(request.state, 'trace_id', None) or request.headers.get('x-trace-id') or str(uuid.uuid4())


@app.middleware('http')
async def trace_and_logging(request: Request, call_next):
    trace_id = request.headers.get('x-trace-id') or str(uuid.uuid4())
    request.state.trace_id = trace_id
    start = time.time()
    try:
        response = await call_next(request)
        latency = round((time.time() - start) * 1000, 2)
        log_request(request.url.path, request.method, trace_id, latency, response.status_code)
        response.headers['x-trace-id'] = trace_id
        response.headers['x-latency-ms'] = str(latency)
        return response
    except Exception as exc:
        latency = round((time.time() - start) * 1000, 2)
        structured_log(
            'error', 'request_failed',
            trace_id=trace_id, duration_ms=latency,
            endpoint=f'{request.method} {request.url.path}',
            error=str(exc),
        )
        body = {'error_code': 'INTERNAL_ERROR', 'message': 'Internal error', 'details': None, 'trace_id': trace_id}
        headers = {'x-trace-id': trace_id, 'x-latency-ms': str(latency)}
        headers.update(_cors_error_headers(request))
        return JSONResponse(status_code=500, content=body, headers=headers)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    trace_id = _trace_id(request)
    if isinstance(exc.detail, dict):
        body = {
            'error_code': str(exc.detail.get('error_code') or 'HTTP_ERROR'),
            'message': str(exc.detail.get('message') or 'HTTP Error'),
            'details': exc.detail.get('details'),
            'trace_id': trace_id,
        }
    else:
        body = {'error_code': 'HTTP_ERROR', 'message': str(exc.detail), 'details': None, 'trace_id': trace_id}
    return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, 'headers', None))


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    body = {
        'error_code': 'INVALID_PAYLOAD',
        'message': 'Invalid payload',
        'details': {'errors': exc.errors()},
        'trace_id': _trace_id(request),
    }
    return JSONResponse(status_code=422, content=body)


app.include_router(v1_router)


@app.on_event('startup')
def _startup() -> None:
    validate_production_config()
    if settings.db_bootstrap_on_start:
        bootstrap_database(engine)
    pool = app.state.worker_pool
    if pool.size:
        try:
            pool.bootstrap_cleanup()
        except Exception:
            logger.exception('sync bootstrap cleanup failed')
    pool.start()


@app.on_event('shutdown')
def _shutdown() -> None:
    app.state.worker_pool.stop()
