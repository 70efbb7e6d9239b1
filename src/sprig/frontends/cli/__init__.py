"""Sprig command line interface."""
