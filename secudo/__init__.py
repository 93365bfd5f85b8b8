"""Secudo: risk assessment and system modelling backend."""

__version__ = "0.1.0"
