"""
Persistence adapters.

These modules encapsulate how data is stored/retrieved. Services depend on
the repository methods rather than touching SQLAlchemy sessions directly.
"""
