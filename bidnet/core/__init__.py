"""Core: configuration, errors, identity, auction domain and storage"""
