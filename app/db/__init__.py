"""Database utilities: reference data seeding."""
