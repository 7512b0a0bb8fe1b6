"""
Ingestion — chunking, embedding and writing document text into the index.

This module is responsible for the pipeline that converts already-extracted
document text into overlapping chunks, embeds them and stores them in the
vector database with ownership metadata.
"""
