"""Semantic version constraints and git tag resolution."""
