"""
Utility modules for the custom SSO service
"""
