"""Utility helpers for the lending kernel."""

from lending_kernel.utils.hashing import canonicalize_json, hash_payload

__all__ = ["canonicalize_json", "hash_payload"]
