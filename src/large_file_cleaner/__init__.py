"""
Git Large File Cleaner - remove oversized blobs from Git history.

Scans every repository below a parent directory for blobs above a size
threshold, archives them to S3, rewrites history without them and verifies
that nothing oversized remains reachable.
"""

__version__ = "1.0.0"
__author__ = "DevOps Engineering Team"
