"""Library Catalog - Services Package

Clients for the library backend:
- HTTP transport with the shared bearer credential
- Catalog (books, search, categories, inventory)
- Reservations
"""
