"""Backend services for Modality Ingest."""
