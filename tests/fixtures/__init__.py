"""Shared test doubles for the CurlFetch suite."""
