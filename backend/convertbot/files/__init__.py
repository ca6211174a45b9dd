"""Public file retrieval.

Converted files are written to the public directory and served from
``GET /files/{filename}`` until the artifact sweep removes them.
"""
