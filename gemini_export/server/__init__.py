"""HTTP API: FastAPI app, job store and response models."""
