"""Shared utilities: logging, file IO and telemetry."""
