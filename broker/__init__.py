"""
Host implementations:

- paper_host: in-memory paper host (no real orders), used by the HTTP panel and tests.
"""
