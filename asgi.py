"""
asgi.py -- Application assembly for the user service.

Builds one SessionService from the environment and exposes the two ASGI apps
that share it. This is the ONLY module that wires settings, store, service
and apps together for an external ASGI server.

Run with:  uvicorn asgi:public_app --port 8080
           uvicorn asgi:private_app --port 8081

Running the two apps under separate uvicorn processes gives each its own
store. With the in-memory store that means tokens issued by one are unknown
to the other -- use `python main.py serve` (one process, both listeners) or a
shared DATABASE_URL.
"""

from api.main import build_service, configure_logging, create_private_app, create_public_app
from core.config import get_settings

_settings = get_settings()
configure_logging(_settings.log_level)

service = build_service(_settings)
public_app = create_public_app(service)
private_app = create_private_app(service)
