"""
API testing package: framework modules and test specifications.
"""
