"""Shared helpers for minibt tests."""
