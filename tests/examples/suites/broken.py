"""Test file failing at import."""

raise ImportError('broken test module')
