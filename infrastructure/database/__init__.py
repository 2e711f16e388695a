"""SQLite-backed shared state store."""
