# Middleware package init
"""
Tracklane Backend: Middleware Package
========================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain (order matters!):
    Request → [Request ID] → [Logging] → [GZip] → [CORS] → Route Handler

    1. Request ID: correlation ID for logs and error bodies
    2. Logging: access log line with status and duration

    The order is reversed for responses, so the access log sees the final
    status code and the X-Request-ID header is set on every response.
"""
