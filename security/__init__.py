"""
security/ - Authentication
==========================
FastAPI dependencies that verify bearer tokens and roles.
"""
