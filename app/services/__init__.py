"""Upstream clients and the resolution pipeline built on them."""
