"""Persistence adapters for exported entity profiles (see ``filesystem``)."""
