"""HTTP route modules, one per collection."""
