"""HTTP surface of the Horizon service.

- **main**: Application factory and lifecycle management
- **dependencies**: Collection providers for route handlers
- **routes**: Collection endpoints
- **middleware**: Correlation IDs and centralized error handling
- **schemas**: Error response format
- **utils**: orjson response class
"""
