"""Kontecst file proxy service"""
