"""Ingestion layer.

This package turns upstream responses into normalized Python values:
date detection, key normalization and the fetch-then-normalize facade.
"""

from pywsf.ingestion.ingest import FetchResult, Ingestor, ingest
from pywsf.ingestion.normalize import normalize_payload

__all__ = ["FetchResult", "Ingestor", "ingest", "normalize_payload"]
