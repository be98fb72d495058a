"""Crowd Balance backend."""
