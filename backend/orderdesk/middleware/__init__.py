# Middleware package init
"""
OrderDesk Backend - Middleware Package
========================================

Middleware Chain:
    Request → [Request ID] → [Access Log] → [CORS] → Route Handler

    Request ID runs first so the access log line and every service log
    line of the request carry the same correlation id.
"""
