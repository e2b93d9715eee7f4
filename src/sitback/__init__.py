"""sitback: personal task tracker core.

Todos live under a hierarchical tag taxonomy, depend on each other through
predecessor edges and are leased to workers by an atomic claim. All state is
one SQLite file managed through SQLModel and Alembic migrations.
"""

__version__ = "0.1.0"
