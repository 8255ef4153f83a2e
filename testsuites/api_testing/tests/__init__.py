"""
API test specifications (health, auth, registration, user management).
"""
