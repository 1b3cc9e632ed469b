"""Core cross-cutting definitions."""
