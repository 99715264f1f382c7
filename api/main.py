import os
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.container import AppContainer, build_container
from api.routers import chat, documents, health, messages
from pdf_chat.exception.custom_exception import PdfChatException
from pdf_chat.logger import GLOBAL_LOGGER as log
from pdf_chat.utils.settings import Settings, get_settings


def create_app(
    container: Optional[AppContainer] = None, settings: Optional[Settings] = None
) -> FastAPI:
    """
    Build the API. With no container, all clients are created in the
    lifespan from settings and closed on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info("Application startup initiated")
        owns_container = getattr(app.state, "container", None) is None
        if owns_container:
            app.state.container = await build_container(settings or get_settings())
        yield
        if owns_container:
            await app.state.container.aclose()
        log.info("Application shutdown")

    app = FastAPI(title="PDF Chat Backend", version="1.0", lifespan=lifespan)
    if container is not None:
        app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PdfChatException)
    async def pdf_chat_exception_handler(request: Request, exc: PdfChatException):
        if exc.status_code >= 500:
            log.error("Request failed | path=%s | error=%s", request.url.path, str(exc))
        else:
            log.info(
                "Request rejected | path=%s | kind=%s | message=%s",
                request.url.path,
                exc.kind,
                exc.error_message,
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.kind, "message": exc.error_message},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        log.exception("Unhandled error | path=%s", request.url.path)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "internal_error", "message": "internal_error"},
        )

    # Router Registration
    app.include_router(health.router, prefix="/health", tags=["health"])
    app.include_router(documents.router, tags=["documents"])
    app.include_router(chat.router, tags=["chat"])
    app.include_router(messages.router, tags=["messages"])

    @app.get("/")
    async def root():
        return {"message": "Backend is running"}

    return app


app = create_app()


def run() -> None:
    """Serve the API with uvicorn (`pdf-chat-api` console script)."""
    uvicorn.run(
        "api.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
    )


if __name__ == "__main__":
    run()
