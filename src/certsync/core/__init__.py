"""Shared types, errors and the push envelope cipher."""
