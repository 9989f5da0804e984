"""
Core infrastructure: database, exceptions, logging, security and events.
"""
