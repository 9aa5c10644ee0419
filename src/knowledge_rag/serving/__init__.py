"""
Serving — HTTP surface over ingestion and retrieval.
"""
