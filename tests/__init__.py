"""Test suite for TickerLens.

Tests mirror the src/ package layout. Snapshots are synthetic trees or inline
HTML, clocks are injected, and stores are rooted in tmp_path, so nothing
touches the network or the real filesystem outside the test's directory.
"""
