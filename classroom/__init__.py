"""Classroom domain package."""
