"""Proving engine implementations."""
