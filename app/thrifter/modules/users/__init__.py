"""
Administrative user management (list, create, update, soft delete, stats).
"""
