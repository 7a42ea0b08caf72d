"""Certwarden Tests"""
