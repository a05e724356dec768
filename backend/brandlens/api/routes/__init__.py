"""
API Routes
"""

from fastapi import APIRouter

from .prompts import router as prompts_router
from .analysis import router as analysis_router
from .citations import router as citations_router
from .trust import router as trust_router
from .settings import router as settings_router

api_router = APIRouter()

api_router.include_router(prompts_router, prefix="/prompts", tags=["Prompts"])
api_router.include_router(analysis_router, prefix="/analysis", tags=["Analysis"])
api_router.include_router(citations_router, prefix="/citations", tags=["Citations"])
api_router.include_router(trust_router, prefix="/trust", tags=["Engine Trust"])
api_router.include_router(settings_router, prefix="/settings", tags=["Settings"])
