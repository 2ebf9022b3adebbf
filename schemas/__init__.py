"""
schemas/ - Request Schemas
==========================
Pydantic models validating HTTP request bodies before they reach a service.
"""
