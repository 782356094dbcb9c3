"""JSON state persistence."""
