"""Optical properties containers and aerosol optics."""
