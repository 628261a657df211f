"""
Content Portal
Blueprint registry.
"""
