"""FastAPI application factory."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from nexora import __version__
from nexora.chat.engine import ChatEngine
from nexora.config.schema import NexoraConfig
from nexora.server.routes import create_router


def create_app(config: NexoraConfig, engine: ChatEngine | None = None) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        config: Nexora configuration
        engine: Chat engine to serve; built from config when omitted

    Returns:
        Configured FastAPI app
    """
    if engine is None:
        engine = ChatEngine.from_config(config)

    app = FastAPI(
        title="Nexora",
        description="Streaming chat client core with inline directive handling",
        version=__version__,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.engine = engine
    app.include_router(create_router(engine))

    return app
