"""Shared helpers used across apps."""
