"""Document ingestion pipeline for the coach knowledge base.

This package takes uploaded files and YouTube transcripts, deduplicates them,
splits them into overlapping chunks, embeds each chunk, stores the results in
Supabase and grants per-coach tiered access to the stored chunks.
"""
