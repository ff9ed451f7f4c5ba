from fastapi import APIRouter
from heimdr.api.v1.endpoints import auth, gmail, outlook, analysis, emails, alerts, cron

api_router = APIRouter(prefix="/api/v1")

# Include all endpoint routers
api_router.include_router(auth.router)
api_router.include_router(gmail.router)
api_router.include_router(outlook.router)
api_router.include_router(analysis.router)
api_router.include_router(emails.router)
api_router.include_router(alerts.router)
api_router.include_router(cron.router)
