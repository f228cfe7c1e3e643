"""
Tourbook API: Application Package
=================================

What: REST backend for a tour-booking product (tours, users, reviews, auth).
How:  FastAPI routes on top of async services on top of MongoDB.

Architecture Note:
    ┌─────────────────────────────────────┐
    │      Routes + Auth dependencies     │  ← HTTP concerns, response envelope
    ├─────────────────────────────────────┤
    │   Services (factory, per-resource)  │  ← query pipeline, aggregation, auth
    ├─────────────────────────────────────┤
    │     Models & Schemas (Pydantic)     │  ← document shapes, request bodies
    ├─────────────────────────────────────┤
    │      Database (pymongo asyncio)     │  ← client lifecycle, indexes
    └─────────────────────────────────────┘

    Every resource is a thin instantiation of the same generic CRUD service,
    so the interesting logic lives in services/query_pipeline.py,
    services/credentials.py and services/auth_gateway.py.
"""

__version__ = "1.0.0"
