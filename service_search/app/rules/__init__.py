"""
Field rules: models, preparation and validation.
"""
