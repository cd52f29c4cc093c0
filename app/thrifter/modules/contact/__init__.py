"""
Public contact-us form and the admin inbox for its submissions.
"""
