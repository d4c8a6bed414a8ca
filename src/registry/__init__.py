"""Placement registry."""
