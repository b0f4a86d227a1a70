"""
vestlock command-line interface.
"""
