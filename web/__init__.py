"""
Web layer - Flask blueprint exposing charge statuses as JSON.
"""
