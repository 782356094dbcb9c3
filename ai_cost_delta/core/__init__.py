"""
Core modules for AI Cost Delta.

This package contains delta accounting, first-token latency tracking,
duplicate suppression and report formatting.
"""
