"""
Shared code for the custom SSO bridge
"""
