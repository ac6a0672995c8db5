"""auth/ -- Identity store, sessions and authorization for Gatekeeper.

Layer rule: auth/ imports only stdlib + third-party libraries (and core/ for
settings). It does NOT import from api/. api/ imports from auth/, not the
other way around -- auth/dependencies.py is the single FastAPI-aware module.
"""
