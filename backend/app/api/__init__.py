"""HTTP API for Modality Ingest."""
