"""Byggportal API - backend for construction project collaboration."""
