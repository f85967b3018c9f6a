"""API 总路由配置，按业务域注册 tools、jobs 与 system 子路由。"""

from __future__ import annotations

from fastapi import APIRouter

from verifyhub.api.v1.jobs import router as jobs_router
from verifyhub.api.v1.system import router as system_router
from verifyhub.api.v1.tools import router as tools_router
from verifyhub.config import get_settings

settings = get_settings()

api_router = APIRouter(prefix=settings.api_prefix)
api_router.include_router(tools_router, tags=["tools"])
api_router.include_router(jobs_router, tags=["jobs"])
api_router.include_router(system_router, tags=["system"])
