"""
Chat-driven calendar assistant
"""
