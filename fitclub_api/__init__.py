"""
Backend package for the FitClub API.

This package provides a FastAPI application with store and object-storage
abstractions for accounts, user profiles and groups.
"""
