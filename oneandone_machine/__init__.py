"""Provision 1&1 Cloud Servers as Docker hosts."""

__version__ = "0.1.0"
