"""Utility functions for the warehouse kernel."""

from warehouse_kernel.utils.hashing import canonicalize_json, hash_payload

__all__ = ["canonicalize_json", "hash_payload"]
