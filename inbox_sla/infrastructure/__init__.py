"""
Shared infrastructure used across modules: database engine and sessions.
"""
