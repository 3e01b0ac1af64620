"""Startup security checks"""
