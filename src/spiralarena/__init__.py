"""Spiral Arena: an elimination tournament engine driven by external randomness."""
