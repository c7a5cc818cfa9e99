"""Domain services: cache store, refresh, view pipeline, bulk actions."""
