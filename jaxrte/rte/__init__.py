"""Longwave and shortwave solvers and flux reduction."""
