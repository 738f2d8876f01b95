"""Completion service providers and usage records."""
