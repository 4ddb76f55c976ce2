"""App-level APIs.

Controllers for archival, sorting and the end-to-end pipeline, plus the
shared data model. Submodules are imported directly by callers.
"""
