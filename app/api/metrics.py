from .router import router
from fastapi import Depends, Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from api.auth.jwt_utils import get_current_user
from api.utils import api_response
from common.log_handler import log
from database.models import Users


@router.get("/metrics") # counters live in process memory, they reset on restart
async def metrics(user: Users = Depends(get_current_user)):
    if "admin" not in (user.roles or []):
        log.warning(f"Non-admin user '{user.username}' requested metrics")
        return api_response(message="Forbidden", success=False, status_code=403)
    data = generate_latest()
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
