from dotenv import load_dotenv
load_dotenv()

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from routers.auth import router as auth_router
from routers.documents import router as documents_router
from utils.config import get_settings
from utils.logging_config import init_logging, install_request_logging
from utils.exception_handlers import install_exception_handlers


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title="DeepSearch Documents API",
        description="Backend API for PDF upload, text extraction, and named-entity annotation.",
        version="1.0.0"
    )

    # Initialize logging and request middleware
    init_logging(settings)
    install_request_logging(app)
    install_exception_handlers(app)

    if not settings.gemini_api_key:
        logging.getLogger("startup").warning("gemini_api_key_missing", extra={"effect": "entity extraction disabled"})

    app.include_router(auth_router)
    app.include_router(documents_router)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    def read_root():
        return {"message": "DeepSearch Backend API is running!"}

    return app


app = create_app()
