"""Infrastructure and delivery pipeline for single-page applications."""
