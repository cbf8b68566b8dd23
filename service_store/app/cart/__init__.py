"""Cart aggregation."""
