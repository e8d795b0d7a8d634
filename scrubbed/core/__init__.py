"""
Core utilities shared across the Scrubbed API.

This package hosts configuration, the process-local TTL cache, outbound
adapters (mailer, SMS) and small helpers that routers/services depend on
instead of reaching for os.environ or third-party clients directly.
"""
