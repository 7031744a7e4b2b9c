"""Pipelines for identity resolution, insight ingestion, statistics and the
collaboration features.

Each step is a plain async function over an AsyncSession so it can be called
from the API, from scripts and from tests alike.
"""
