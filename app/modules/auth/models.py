# Supabase Auth
# This module uses Supabase's built-in authentication system
# No custom tables are required - Supabase Auth owns auth.users

"""
Supabase Auth provides:
- auth.sign_up() - Create an identity (id, email, confirmed)
- auth.sign_in_with_password() - Authenticate and obtain an access token
- auth.get_user() - Resolve the identity behind an access token
- auth.sign_out() - End the session

The identity id issued here is the primary key of the founder profile row
(see app/modules/founders/models.py). Identities are never deleted by this
service.
"""
