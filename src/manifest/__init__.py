"""Build-time artifact manifest."""
