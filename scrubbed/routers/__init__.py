"""
FastAPI routers grouped by domain (auth, requests, collectors).

Each file inside this package exposes an APIRouter that is included in the
main application (app.py). Services are looked up on app.state so tests can
swap them for fakes.
"""
