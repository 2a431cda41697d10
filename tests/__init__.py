"""Tests for signoff."""
