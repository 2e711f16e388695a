"""Low-level SQL operation mixins for the database handler."""
