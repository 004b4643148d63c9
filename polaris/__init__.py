"""
Polaris - chat automation assistant with table-driven handlers.
"""
