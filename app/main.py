import sys, os
sys.path.append(os.path.dirname(__file__)) # modules import each other as top level packages (common, database, api, twofactor)
from fastapi.middleware.cors import CORSMiddleware
from fastapi import FastAPI, Request
from dotenv import load_dotenv
from contextlib import asynccontextmanager
import redis.asyncio as redis
from fastapi_cache import FastAPICache
from fastapi_cache.backends.redis import RedisBackend
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from common.log_handler import log
from database.models import ElectionEngine, election_engine
from twofactor.errors import PersistenceFailure, PrincipalNotFound
import asyncio
from api.rate_limiter import limiter
from api.utils import api_response


load_dotenv()


@asynccontextmanager
async def lifespan(app: FastAPI):
    redis_url = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    redis_client = redis.from_url(
        redis_url,
        encoding="utf-8",
        decode_responses=False
    )
    FastAPICache.init(RedisBackend(redis_client), prefix="fastapi-cache")
    log.info("FastAPI Cache initialized with Redis backend")

    async with election_engine.begin() as conn:
        log.info("Creating database tables if they do not exist")
        await conn.run_sync(ElectionEngine.metadata.create_all)

    try:
        yield
    finally:
        await redis_client.close()
        await election_engine.dispose()
        log.info("Redis connection closed")

if os.getenv("DEV", "FALSE").upper() == "TRUE":
    app = FastAPI(debug=True, title="Election API auth DEVELOPMENT", lifespan=lifespan)
    log.warning("Starting **development** server")
else:
    app = FastAPI(title="Election API auth", lifespan=lifespan, openapi_url=None, docs_url=None, redoc_url=None)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(PersistenceFailure)
async def persistence_failure_handler(request: Request, exc: PersistenceFailure):
    log.error(f"Request to {request.url.path} failed, database unavailable: {exc}")
    return api_response(message="Service temporarily unavailable, please retry", data={"reason": exc.reason}, success=False, status_code=503)


@app.exception_handler(PrincipalNotFound)
async def principal_not_found_handler(request: Request, exc: PrincipalNotFound):
    return api_response(message="User not found", data={"reason": exc.reason}, success=False, status_code=404)


from api import router as api_router
app.include_router(api_router)

from api.anti_abuse import setup_ban_middleware
setup_ban_middleware(app)

ALLOWED_ORIGINS = [origin.strip() for origin in os.getenv("FRONTEND_URL", "").split(",") if origin.strip()]
if os.getenv("DEV", "FALSE").upper() == "TRUE":
    ALLOWED_ORIGINS.append("http://localhost:3000")
    ALLOWED_ORIGINS.append("http://localhost:5000")
    ALLOWED_ORIGINS.append("http://localhost:8000")
    ALLOWED_ORIGINS.append("http://localhost:8001")
    log.warning("CORS allowed origins set for development")
elif not ALLOWED_ORIGINS:
    raise ValueError("FRONTEND_URL is not set")


app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


if __name__ == "__main__":
    import uvicorn

    log.warning("Starting development server")
    from api.anti_abuse import reset_ip_ban
    asyncio.run(reset_ip_ban("127.0.0.1"))
    uvicorn.run("main:app", host="0.0.0.0", port=8001, reload=True)
