"""Shared building blocks: config, errors, HTTP helpers, events, pollers."""
