"""Shared modules for the Kontecst file proxy"""
