"""
Shared building blocks of the message trust pipeline
"""
