"""Shared library code: logging, exceptions, error messages, security helpers."""
