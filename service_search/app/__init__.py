"""
Search service application.
"""
