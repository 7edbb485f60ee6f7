"""
Core business logic for coach session scheduling.

This module is framework-agnostic - it doesn't import FastAPI, MongoDB,
or any infrastructure concerns. The booking rules can be tested in
isolation against the in-memory store.
"""
