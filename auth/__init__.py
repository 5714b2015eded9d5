"""auth/ -- Credential lifecycle and bearer tokens for Credgate.

Layer rule: auth/ may import from core/, verify/ and db/.
It does NOT import from api/. api/ imports from auth/, not the other way around.
"""
