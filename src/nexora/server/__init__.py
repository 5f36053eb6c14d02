"""HTTP server exposing the chat engine."""
