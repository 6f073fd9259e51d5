"""Access policies"""
