"""Persistence: ORM models, database wrapper, and repository backends."""
