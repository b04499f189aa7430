"""Operational side of the site: preflight checks, deploys and pipeline runs."""
