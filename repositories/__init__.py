"""
repositories/ - Data Access Layer
==================================
Each repository encapsulates all SQL queries for a specific domain entity.
Repositories receive raw data from the database and return domain model objects.
SQL fragments that depend on caller input are built by `query_builder`.
"""
