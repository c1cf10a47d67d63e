"""
Query compilation: filter conditions, composition and ordering.
"""
