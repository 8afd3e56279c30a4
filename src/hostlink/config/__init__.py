"""
Transport settings and the configobj files they are loaded from.
"""
