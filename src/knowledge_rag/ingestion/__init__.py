"""
Ingestion — chunking, embedding, and persisting documents.

Converts extracted document text (already parsed from PDF, HTML, plain
text, …) into embedded chunks stored against a knowledge base.
"""
