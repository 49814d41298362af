"""Algoan / Bridge connector service."""
