"""
Modality Ingest Backend - Imaging acquisition notification reconciliation

This module provides the backend services for Modality Ingest, which turns
asynchronous acquisition notifications from scanners and radiology information
systems into a canonical patient, study, series and image hierarchy with a
pending report per study.
"""

__version__ = "1.0.0"
__author__ = "Modality Ingest Team"
