from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from core.config import settings
from core.exceptions import register_exception_handlers
from app.startup import configure_startup_logging, run_startup_checks

# ========== Tax: jurisdictions, rate timeline, ledger, calculation ==========
from modules.tax.routes.tax_routes import router as tax_router

# ========== Orders & Imports ==========
from modules.orders.routes.order_routes import router as order_router
from modules.orders.routes.import_routes import router as import_router

# ========== Admin ==========
from modules.admin.routes.admin_routes import router as admin_router

API_PREFIX = "/api/v1"

configure_startup_logging()

app = FastAPI(
    title="NYS Tax Ledger API",
    description="""
    Geolocated New York State sales tax.

    * **Jurisdictions** - state, county, city and special district boundaries
    * **Rate timeline** - point-in-time rates with an append-only change ledger
    * **Calculation** - composite rate and tax for a point, amount and instant
    * **Orders** - manual entry and CSV import with rollback
    """,
    version="1.0.0",
    debug=settings.debug,
)

# Register exception handlers for consistent error responses
register_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(tax_router, prefix=API_PREFIX)
app.include_router(order_router, prefix=API_PREFIX)
app.include_router(import_router, prefix=API_PREFIX)
app.include_router(admin_router, prefix=API_PREFIX)


@app.on_event("startup")
async def startup_event():
    """Validate configuration and database before serving"""
    run_startup_checks()


@app.get("/")
def read_root():
    return {"message": "NYS Tax Ledger API", "docs": "/docs"}


@app.get("/health")
def health():
    return {"status": "ok"}
