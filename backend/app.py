from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend.routes import router
from cafe_assistant.config import Settings, load_settings
from cafe_assistant.pipeline import Assistant


def create_app(settings: Settings | None = None, assistant: Assistant | None = None) -> FastAPI:
    resolved = settings or load_settings()

    app = FastAPI(title="Cafe Assistant")
    app.state.settings = resolved
    app.state.assistant = assistant or Assistant.from_settings(resolved)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )
    app.include_router(router, prefix="/api")
    return app


# Default app instance for uvicorn (reads .env / environment)
app = create_app()
