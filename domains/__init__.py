"""Domain modules for the Nudge reminder service."""
