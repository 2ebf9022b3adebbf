"""
models/ - Domain Layer
======================
Plain dataclasses describing antennes and the value objects used to query them.
"""
