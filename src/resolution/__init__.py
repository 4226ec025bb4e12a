"""Dependency graph resolution, package cache and lock files."""
