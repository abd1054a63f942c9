"""HTTP service around the extraction pipeline."""
