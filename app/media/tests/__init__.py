"""Tests for the media app."""
