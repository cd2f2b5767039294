# Services package init
"""
OrderDesk Backend - Services Layer
====================================

What:  Business logic between routes (HTTP) and the database.

Service Inventory:
    - order_filters:     Composable search predicates and sort clauses
    - order_store:       Order persistence (read, search, update, delete)
    - status_machine:    Pure payment / delivery / aggregate status transitions
    - invoice_renderer:  Order → PDF bytes
    - mail_dispatcher:   PDF → customer email over SMTP
    - order_service:     Orchestrates the above for each endpoint
"""
