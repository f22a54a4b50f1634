"""
Fiscal Kernel - shared infrastructure for fiscal document import.

- SQLAlchemy declarative base, engine and session scope
- Structured JSON logging with contextual fields
- Typed exception hierarchy with machine-readable codes
- Injectable clock and validation DTOs
"""

__version__ = "0.1.0"
