"""Messaging gateway API."""
