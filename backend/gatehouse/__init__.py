"""
Gatehouse: HTTP server bootstrap.
Builds the request pre-processing pipeline and starts serving only after the
database connection is established.
"""
