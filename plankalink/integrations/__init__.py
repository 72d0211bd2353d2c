"""
Planka integration.

planka.py talks to the Planka API, service.py runs the login/link workflow,
and router.py exposes it under /planka.
"""
