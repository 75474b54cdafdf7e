"""Application workflows."""
