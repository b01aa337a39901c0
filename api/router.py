from fastapi import APIRouter

from api.v1.classes import router as classes_router
from api.v1.enrollments import router as enrollments_router

router = APIRouter()

# Include v1 routers
router.include_router(classes_router, prefix="/v1")
router.include_router(enrollments_router, prefix="/v1")
