"""Manage OpenVPN Connect profiles and their saved credentials."""

__version__ = "1.0.0"
