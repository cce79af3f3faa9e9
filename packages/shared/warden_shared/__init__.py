"""Schemas shared by the Warden server and its API consumers."""

__version__ = "0.1.0"
