"""Cross-cutting components used by every layer of the Horizon service.

- **config**: Settings with environment variable support
- **context**: Request correlation IDs
- **exceptions**: Error hierarchy with error codes and severities
- **error_context**: Sensitive data sanitization for safe logging
- **logging**: Loguru setup with console and JSON formatters
"""
