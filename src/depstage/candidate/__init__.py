"""Candidate staging: builder, marker file, manifest version record and cache."""
