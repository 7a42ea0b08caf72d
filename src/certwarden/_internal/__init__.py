"""Certwarden internal components. Not part of the public API."""
