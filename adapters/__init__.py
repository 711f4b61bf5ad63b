"""Integrations with external delivery providers."""
