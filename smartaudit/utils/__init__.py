"""Utility helpers."""
