from fastapi import APIRouter

from revsync.api.v1.endpoints import cron, health, signals, sync

router = APIRouter(prefix='/api/v1')
router.include_router(health.router, tags=['health'])
router.include_router(sync.router, prefix='/sync', tags=['sync'])
router.include_router(signals.router, prefix='/signals', tags=['signals'])
router.include_router(cron.router, prefix='/cron', tags=['cron'])
