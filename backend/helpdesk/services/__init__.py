"""
Business logic services package.

WHY: Services hold the ticket rules (SLA policy, paging and search, access,
idempotency, timeline) apart from API routes and data access, following
the three-layer architecture (API → Service → DAO).
"""
