"""Request identity"""
