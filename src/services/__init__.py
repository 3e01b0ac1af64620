"""Service routers"""
