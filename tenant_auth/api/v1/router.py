# tenant_auth/api/v1/router.py
from fastapi import APIRouter
from tenant_auth.api.v1 import auth, sessions, two_factor

api_router = APIRouter()

# tenant vem do header X-Tenant (login/registro) ou das claims do token
api_router.include_router(auth.router,       prefix="/auth",          tags=["auth"])
api_router.include_router(sessions.router,   prefix="/auth/sessions", tags=["sessions"])
api_router.include_router(two_factor.router, prefix="/auth/2fa",      tags=["2fa"])
