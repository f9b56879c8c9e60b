"""User catalog package: models, ingestion, search, and API.

Users are bulk-loaded from an external paginated source and served through
lookup and free-form search endpoints.
"""
