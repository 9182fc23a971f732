"""Utilities package for Catalog Composer (config, constants, validators)."""
