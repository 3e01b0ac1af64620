"""Health and readiness probes"""
