"""Driver-backed adapters for the Dead Drop database manager."""
