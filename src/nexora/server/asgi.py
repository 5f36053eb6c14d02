"""ASGI entry point for running the nexora server via uvicorn CLI:

    python -m uvicorn nexora.server.asgi:app --host ... --port ...
"""

from nexora.config.loader import load_config
from nexora.server.app import create_app

config = load_config()
app = create_app(config)
