"""Storage adapters for external collaborators."""
