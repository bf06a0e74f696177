"""Shared utilities: money formatting and structured logging helpers."""
