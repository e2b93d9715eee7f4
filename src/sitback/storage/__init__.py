"""SQLite persistence: engine policy, tables, migrations and the store handle."""
