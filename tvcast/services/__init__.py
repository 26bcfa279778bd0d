"""
Services package for tvcast

This package contains the ingestion pipeline, the record store operations and
the command layer.
"""
