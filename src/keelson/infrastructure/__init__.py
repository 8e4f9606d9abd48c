"""Infrastructure layer: persistence and the HTTP surface."""
