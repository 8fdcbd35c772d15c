"""Test identity tokens and provider keys."""
