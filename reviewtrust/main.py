from fastapi import FastAPI
from .database import engine
from .models import Base as ModelsBase
from .metadata import ImportRun
from .log import configure_logging
from .exceptions import register_exception_handlers
from .realtime import broker
from .api import router as api_router
from .business_api import router as business_router
from .admin_api import router as admin_router
from .live_api import router as live_router

configure_logging()

# Ensure tables exist at startup (safe for SQLite/PoC)
ModelsBase.metadata.create_all(bind=engine)

app = FastAPI(title="ReviewTrust API", version="0.1.0")
app.state.broker = broker
register_exception_handlers(app)
app.include_router(api_router)
app.include_router(business_router)
app.include_router(admin_router)
app.include_router(live_router)
