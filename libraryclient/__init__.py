"""Library Client - Core Package

This package contains the client side of the library management service:
- Configuration (config.py)
- Remote records and request payloads (models.py)
- Display statistics derived from fetched data (stats.py)
- HTTP client, auth token state and resource endpoints (services/)
"""

__version__ = "1.0.0"
