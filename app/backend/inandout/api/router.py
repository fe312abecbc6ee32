"""Top-level API router."""

from fastapi import APIRouter

from inandout.api.routes.audit_logs import router as audit_logs_router
from inandout.api.routes.auth import router as auth_router
from inandout.api.routes.health import router as health_router
from inandout.api.routes.me import router as me_router
from inandout.api.routes.organizations import router as organizations_router
from inandout.api.routes.projects import router as projects_router
from inandout.api.routes.reports import router as reports_router
from inandout.api.routes.scheduling import router as scheduling_router
from inandout.api.routes.system import router as system_router
from inandout.api.routes.time import router as time_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router)
api_router.include_router(me_router)
api_router.include_router(organizations_router)
api_router.include_router(projects_router)
api_router.include_router(time_router)
api_router.include_router(scheduling_router)
api_router.include_router(reports_router)
api_router.include_router(audit_logs_router)
api_router.include_router(system_router)
