"""Services package: expense store, analyzer, analysis backends, storage, OCR and ingestion."""
