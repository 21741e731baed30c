"""
NewsCrawl Ingestion Module
==========================

This module handles:
- Fetching feed documents over HTTP
- RSS/Atom format detection
- Item extraction and field normalization
"""
