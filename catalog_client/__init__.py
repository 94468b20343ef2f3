"""Library Catalog - client package

Async client for the library REST API:
- Session store and authorization guard (session.py, guard.py)
- Catalog and reservation clients (services/)
- Book detail view with local availability projection (reconciler.py)
- View models and CLI rendering helpers (views.py, ui_helpers.py)
- In-memory reference backend (devserver.py)
"""
