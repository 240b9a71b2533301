from api.router import router
from fastapi_cache.decorator import cache
from api.auth.router import router as auth_router
from api import metrics

router.include_router(auth_router)

@router.get("/")
@cache(expire=3600)
async def index():
    return {"message": "Election API authentication service"}
