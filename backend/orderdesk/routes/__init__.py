# Routes package init
"""
OrderDesk Backend - API Routes Package
========================================

Route Inventory:
    - orders.py:  /orders/...   (search, detail, transitions, invoice, delete)
    - health.py:  GET /health   (service health check)

Routes stay thin: read the request, call OrderService, shape the response.
"""
