"""
handlers/ - Presentation Layer
================================
FastAPI routers. Each handler receives an HTTP request, delegates to the
appropriate Service, and shapes the JSON response.
No business logic lives here.
"""
