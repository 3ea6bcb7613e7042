"""Wallet core: keys, notes, indexer access, proving and persistence"""
