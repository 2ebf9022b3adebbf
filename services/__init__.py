"""
services/ - Business Layer
==========================
Orchestrates repositories and the event publisher. Handlers call services;
services never deal with HTTP.
"""
