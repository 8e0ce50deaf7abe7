"""
Core domain layer: configuration, persistence, models, schemas and services.
"""
