"""audit/ -- Security audit log for BranchDesk.

Entries are appended by the HTTP layer (audit middleware in api/main.py) and
read only through SecurityAudit.query(), which requires a principal whose
role grants Capability.view_security_logs.

Layer rule: audit/ may import from auth/ and core/. It does NOT import from
api/ or web/.
"""
