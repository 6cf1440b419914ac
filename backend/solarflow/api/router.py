from fastapi import APIRouter

from solarflow.api.routes import backups, contracts, handovers, health, jobs

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(jobs.router)
api_router.include_router(contracts.router)
api_router.include_router(handovers.router)
api_router.include_router(backups.router)
