"""InstaRelief: parametric disaster-relief micro-insurance.

Policyholders register with a ZIP code and a payout wallet. When NOAA issues
a weather alert covering their county, or an administrator triggers a
catastrophe for their ZIP, they receive an automatic payout and an email.

The NOAA alert cron runs as a background task when ``ALERT_CRON_ENABLED`` is
set; admins can also run it on demand.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from instarelief.api.admin.routes import router as admin_router
from instarelief.api.v1.routes import router as v1_router
from instarelief.core.config import settings
from instarelief.core.errors import register_error_handlers
from instarelief.core.middleware import RequestLoggingMiddleware
from instarelief.services import alert_cron

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)

logger = logging.getLogger(__name__)


DESCRIPTION = """\
Backend for **InstaRelief**, a disaster-relief micro-insurance demo.

### Payout paths

| Path | Endpoint | What happens |
|------|----------|--------------|
| NOAA alert | `POST /api/v1/admin/alerts/fetch` or the cron | Extreme/Severe alerts credit the standard payout to every active user in the affected counties |
| Simulation | `POST /api/v1/admin/alerts/simulate` | Same fan-out for one ZIP with a synthetic alert |
| Catastrophe | `POST /api/v1/admin/catastrophes` | On-chain transfer from the operator wallet to every affected user |
| AI agent | `POST /api/v1/admin/agent` | Prepares a catastrophe for admin confirmation |

### Authentication

Admin endpoints require `Authorization: Bearer <ADMIN_SECRET>`. Registration
and user lookups are public.
"""

TAGS_METADATA = [
    {"name": "users", "description": "Policyholder onboarding and dashboard lookups."},
    {"name": "price", "description": "USD to payout-token quotes."},
    {"name": "admin", "description": "Catastrophe triggers and user management. Requires admin secret."},
    {"name": "alerts", "description": "NOAA alert processing and disaster simulation."},
    {"name": "wallet", "description": "Operator wallet status."},
    {"name": "agent", "description": "AI admin assistant."},
    {"name": "ops", "description": "Health checks."},
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    cron_task = None
    if settings.alert_cron_enabled:
        logger.info("Starting NOAA alert cron background task")
        cron_task = asyncio.create_task(alert_cron.run_alert_loop())
    yield
    if cron_task is not None:
        alert_cron.stop()
        cron_task.cancel()
        try:
            await cron_task
        except asyncio.CancelledError:
            pass
        logger.info("Alert cron shut down")


app = FastAPI(
    title="InstaRelief API",
    version="0.1.0",
    description=DESCRIPTION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=TAGS_METADATA,
    lifespan=lifespan,
    swagger_ui_parameters={"persistAuthorization": True},
)

register_error_handlers(app)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(v1_router)
app.include_router(admin_router)


@app.get("/health", tags=["ops"])
async def health() -> dict[str, str]:
    return {"status": "ok", "service": "instarelief"}
