"""Adapters for sources, storage and notification transports."""
