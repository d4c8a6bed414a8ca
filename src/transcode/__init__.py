"""Resize, compress and encode pipeline."""
