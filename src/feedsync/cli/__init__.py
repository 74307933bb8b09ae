"""
feedsync command line interface.
"""
