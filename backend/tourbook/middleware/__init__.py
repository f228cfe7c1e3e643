"""
Tourbook API: Middleware Package
================================

Cross-cutting concerns applied to every request.

Middleware Chain:
    Request → [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → Route

    Rate limiting runs first and only counts /api paths. The request ID is
    set before logging so access lines and error envelopes can carry it.
"""
