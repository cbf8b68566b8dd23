"""Inventory adjustments."""
