"""Marketplace payments service: contracts, jobs and job payments between clients and contractors."""
