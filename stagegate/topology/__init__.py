"""Declared deployment topologies."""
