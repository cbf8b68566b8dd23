"""Caller privilege resolution."""
