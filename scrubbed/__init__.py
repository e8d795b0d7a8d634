"""Scrubbed waste pickup backend: identity, verification and request matching."""
