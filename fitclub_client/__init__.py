"""
Python client for the FitClub API: typed request wrappers and the form
objects that validate input before calling them.
"""
