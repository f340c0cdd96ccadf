"""Shared test fixtures package.

Provides in-memory AWS fakes and helpers for all test suites.
"""
