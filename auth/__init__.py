"""auth/ -- Identity, credentials, permissions and the session engine.

Layer rule: auth/ imports from core/ and, in service.py, from the storage
Protocol only. It does NOT import from api/. api/ imports from auth/, not the
other way around. auth/dependencies.py is the single module that knows about
FastAPI.
"""
