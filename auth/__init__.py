"""auth/ -- Authentication core for authcore.

Stores, hasher, token issuer, engine and request gate.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/. api/ and main.py import from auth/, not the
other way around.
"""
