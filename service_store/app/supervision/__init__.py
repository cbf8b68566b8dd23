"""Connection supervision and request gating."""
