"""Meshcall signaling web application."""
