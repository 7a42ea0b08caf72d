"""Utilities for testing Certwarden."""
