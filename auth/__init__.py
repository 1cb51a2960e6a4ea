"""auth/ -- Authentication and session security for BranchDesk.

Layer rule: auth/ imports only core/, stdlib and third-party libraries.
It does NOT import from api/, web/ or audit/.
api/ and web/ import from auth/, not the other way around.
"""
