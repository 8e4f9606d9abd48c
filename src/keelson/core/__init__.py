"""Core configuration, logging, errors and caching for Keelson."""
