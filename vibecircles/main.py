import logging
import os
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from pythonjsonlogger import jsonlogger

from . import config
from .database import Database
from .errors import register_error_handlers
from .metrics import init_metrics, observe
from .ratelimit import redis_startup, redis_shutdown
from .routes import router

# setup structured logging
logger = logging.getLogger('vibecircles')
if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = jsonlogger.JsonFormatter('%(asctime)s %(levelname)s %(name)s %(message)s')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
logger.setLevel(logging.INFO)


@asynccontextmanager
async def lifespan(app: FastAPI):
    db = Database(config.DATABASE_URL, pool_size=config.DATABASE_POOL_SIZE)
    app.state.db = db
    if config.DATABASE_CREATE_ALL:
        await db.create_all()
    # Best-effort init, the API runs without redis and metrics
    await redis_startup()
    init_metrics(config.METRICS_PORT)
    logger.info({'msg': 'startup_complete', 'env': config.APP_ENV})
    try:
        yield
    finally:
        await redis_shutdown()
        await db.dispose()


os.makedirs(config.UPLOAD_DIR, exist_ok=True)

app = FastAPI(title="VibeCircles API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

register_error_handlers(app)

app.include_router(router, prefix="/api")
app.mount('/uploads', StaticFiles(directory=config.UPLOAD_DIR), name='uploads')


@app.get('/healthz')
async def healthz(request: Request):
    db_ok = await request.app.state.db.health_check()
    return {'status': 'ok', 'database': 'ok' if db_ok else 'unavailable'}


@app.middleware('http')
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    logger.info({'msg': 'request_start', 'method': request.method, 'path': request.url.path})
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        elapsed = time.perf_counter() - start
        route = request.scope.get('route')
        observe(request.method, getattr(route, 'path', 'unmatched'), status_code, elapsed)
        logger.info({'msg': 'request_end', 'path': request.url.path, 'status': status_code,
                     'duration_ms': round(elapsed * 1000, 2)})
