"""Shared helpers for durations, timestamps and logging."""
