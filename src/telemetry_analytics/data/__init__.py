"""Data retrieval helpers."""
