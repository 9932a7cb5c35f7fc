"""
asgi.py -- ASGI entry point for authcore.

The engine is built inside the application lifespan from environment
settings (SECRET, STORAGE_TYPE, DB_URI), so importing this module reads no
configuration.

Run with:  uvicorn asgi:app --reload
"""

from api.main import create_app

app = create_app()
