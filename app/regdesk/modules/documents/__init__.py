"""Application documents: storage merge, signed URLs, versions and review."""
