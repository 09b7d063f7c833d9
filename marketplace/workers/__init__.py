"""Background workers (run as standalone processes)."""
