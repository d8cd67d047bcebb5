"""Relational storage for the mirrored commit graph and test results."""
