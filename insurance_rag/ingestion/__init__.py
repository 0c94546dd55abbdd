"""Ingestion package: writes insurer, document and chunk records.

See engine.py for the IngestionEngine and batching.py for bulk partitioning and
partial-failure accounting.
"""
from insurance_rag.ingestion.engine import IngestionEngine

__all__ = ["IngestionEngine"]
