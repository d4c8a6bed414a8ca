"""Shared domain errors."""
