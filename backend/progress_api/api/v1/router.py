from fastapi import APIRouter

from progress_api.api.v1.endpoints import health, progress, settings, sync

router = APIRouter(prefix='/api/v1')
router.include_router(health.router, tags=['health'])
router.include_router(progress.router, prefix='/progress', tags=['progress'])
router.include_router(sync.router, prefix='/sync', tags=['sync'])
router.include_router(settings.router, prefix='/companies', tags=['settings'])
