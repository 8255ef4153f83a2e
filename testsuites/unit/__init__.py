"""
Framework unit tests. No API target is needed.
"""
