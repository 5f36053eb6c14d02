"""Chat core: directive grammar, stream reconciliation and the send path.

- :mod:`nexora.chat.directives` - Tag grammar scanned over the cumulative buffer
- :mod:`nexora.chat.actions` - Typed actions and their dispatch
- :mod:`nexora.chat.reconciler` - Turns a chunk stream into a finalized message
- :mod:`nexora.chat.rate_limit` - Usage window for the pro tier
- :mod:`nexora.chat.engine` - Send entry point tying sessions, limits and streaming together
"""
