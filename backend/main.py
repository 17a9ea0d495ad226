from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from api.status import router as status_router
from api.emissions_routes import router as emissions_router
from config import configure_logging, settings
from services.repository import build_repository
from contextlib import asynccontextmanager
import logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    app.state.repository = build_repository(settings)
    logging.getLogger(__name__).info(
        "Emission engine ready (reference preset: %s)", settings.REFERENCE_PRESET
    )
    yield


app = FastAPI(title="Fleet Emissions Backend", lifespan=lifespan)

# CORS (adjust for your frontend)
origins = settings.CORS_ALLOW_ORIGINS.split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register API routes
app.include_router(status_router)
app.include_router(emissions_router)

if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="127.0.0.1", port=8000, reload=True)
