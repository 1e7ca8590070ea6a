"""API routes."""

from fastapi.routing import APIRouter

from src.web.routes.api.anime import router as anime_router
from src.web.routes.api.animes import router as animes_router
from src.web.routes.api.bulk import router as bulk_router
from src.web.routes.api.jobs import router as jobs_router

__all__ = ["router"]

router = APIRouter()


router.include_router(animes_router, prefix="/animes", tags=["animes"])
router.include_router(anime_router, prefix="/anime", tags=["anime"])
router.include_router(jobs_router, prefix="/job", tags=["jobs"])
router.include_router(bulk_router, tags=["bulk"])
