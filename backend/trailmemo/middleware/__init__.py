"""
TrailMemo Backend — Middleware Package
========================================

Execution order for an incoming request (last added in create_app runs first):

    Request → [Rate Limit] → [Request ID] → [Access Log] → [GZip] → [CORS] → Route

    Rate limiting rejects before any work. The request id is set before the
    access log line is written, so every log line of a request carries it.
"""
