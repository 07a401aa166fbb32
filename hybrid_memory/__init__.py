"""Hybrid memory engine: persistent memories with vector + keyword search."""
