"""Test suite for the pytest-ftr package.

Covers config resolution, provider resolution, lifecycle phases, suite
loading, the pytest engine, the run driver and the command line.
"""
