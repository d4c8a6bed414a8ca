"""Structured logging: formatters, context and rotating handlers."""
