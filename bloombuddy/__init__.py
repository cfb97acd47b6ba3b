"""
BloomBuddy Document Analyzer
============================
Extracts questions from uploaded documents and categorizes them by
Bloom's Taxonomy level using a remote chat-completion service.

Architecture:
    - Page Renderer: Converts selected PDF pages to base64 raster images
    - Credential Check: Sanity-checks the API key shape before any call
    - Completion Client: Sends page images / text to the remote model
    - Normalizer: Folds heterogeneous JSON replies into six categories
    - Analyzer: Batched fan-out, merge, fallback synthesis, reporting
    - Question Store: SQLite history and question bank

Version: 1.0.0
"""

__version__ = "1.0.0"
