from fastapi import APIRouter

# Import sub-routers
from .tax_jurisdiction_routes import router as jurisdiction_router
from .tax_calculation_routes import router as calculation_router
from .tax_rate_routes import router as rate_router

# Create main tax router
router = APIRouter(prefix="/tax", tags=["Tax"])

# Include sub-routers
router.include_router(calculation_router)
router.include_router(jurisdiction_router)
router.include_router(rate_router)
