"""
High-level use cases for the Scrubbed API.

Each service module orchestrates repositories/adapters to implement business
rules (sign in, verify a phone, claim a request, etc.).

Routers (FastAPI endpoints) call these services instead of manipulating the
database or sessions directly.
"""
