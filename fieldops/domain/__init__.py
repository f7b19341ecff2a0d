"""Domain-driven feature packages"""
