"""
AWS Lambda handlers.
"""
