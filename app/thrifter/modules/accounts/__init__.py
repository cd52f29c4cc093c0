"""
Accounts: registration, sign-in, refresh-token rotation, email OTP
verification and the password-reset flow.
"""
