"""FastAPI middleware and exception handlers.

- **RequestContextMiddleware**: Manages correlation IDs and request context
- **error_handler**: Maps application errors to consistent error responses
"""
