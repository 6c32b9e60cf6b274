"""
HTTP routers for the recovery kernel.

Modules:
- engine_router: guardian, recovery, batch and value endpoints
"""
