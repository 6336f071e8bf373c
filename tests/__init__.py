"""
Test package for texfmt.

This package contains comprehensive tests including:
- Unit tests for individual components
- Integration tests for the processor and command-line interface
- Property-based tests using Hypothesis
"""
