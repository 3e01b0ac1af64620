"""Encrypted file retrieval"""
