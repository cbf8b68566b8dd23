"""Catalog operations."""
