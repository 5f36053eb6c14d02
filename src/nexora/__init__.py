"""Nexora - streaming chat client core for generative-AI APIs.

Nexora consumes incrementally streamed model output, extracts the inline
control directives the model embeds in its text, and reconciles the result
into chat sessions that persist across restarts.

Key modules:

- :mod:`nexora.chat` - Directive grammar, stream reconciler, rate limiter, send engine
- :mod:`nexora.memory` - Per-tier session store and key-value persistence
- :mod:`nexora.llm` - Model streaming and image-generation clients
- :mod:`nexora.server` - FastAPI app exposing streamed sends over SSE
- :mod:`nexora.cli` - Typer command line (chat REPL, server, session management)
"""

__version__ = "0.1.0"
