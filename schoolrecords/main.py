import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from schoolrecords.api.v1.grading.router import router as grading_router
from schoolrecords.api.v1.imports.router import router as imports_router
from schoolrecords.api.v1.promotions.router import router as promotions_router
from schoolrecords.core.config import settings


def create_app() -> FastAPI:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(title="School Records Import Service")

    # CORS: allow the records frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(imports_router)
    app.include_router(grading_router)
    app.include_router(promotions_router)

    return app


app = create_app()
