"""Relational store access used by the health probes."""
