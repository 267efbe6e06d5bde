"""Worker process for the rotation demo.

Connects to Temporal with a rotating client certificate and polls the
greeting task queue until interrupted.
"""
