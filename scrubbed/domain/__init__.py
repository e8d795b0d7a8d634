"""Domain types and pure helpers (no storage, no HTTP)."""
