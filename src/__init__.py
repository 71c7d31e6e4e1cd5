"""Horizon - generic collection management over a relational store.

Architecture Overview:
- **API Layer**: FastAPI routes, middleware and error responses
- **Core Layer**: Configuration, logging, errors and request context
- **Collections**: Concrete record types (feedback, media)
- **Infrastructure Layer**: Collection manager, sessions and change messaging
"""
