"""
Command-line entry points.

Scripts:
    - ingest.py: Sample the vehicle feed and write one chunk per window
    - serve.py: Serve history, window statistics and anomalies over HTTP
"""
