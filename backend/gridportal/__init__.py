"""
Grid Portal - dynamic data grids backed by registered PostgreSQL procedures
"""
__version__ = "1.0.0"
