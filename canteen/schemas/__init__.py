"""
Request/response schemas.
"""
