"""Pipelines for record mapping, bulk ingestion, and search execution.

Each step is callable on its own with an ``AsyncSession`` so it can be used
from the API, startup hooks, or scripts.
"""
