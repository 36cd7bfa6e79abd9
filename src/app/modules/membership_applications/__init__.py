"""
Membership Applications Module

Handles the membership application workflow:
1. Submission with a payment receipt and a roster eligibility check
2. Admin review; approval provisions the member account in the same transaction
3. Background jobs for roster cache refresh and orphaned receipt cleanup

API Endpoints:
- POST /membership/apply - Submit an application (multipart)
- POST /membership/check-eligibility - Roster lookup
- GET /membership/admin/applications - List applications (admin)
- GET /membership/admin/applications/{id} - Application detail (admin)
- PUT /membership/admin/applications/{id} - Approve or reject (admin)
"""

from .admin_router import router as admin_router
from .jobs import register_membership_jobs
from .router import router

__all__ = ["admin_router", "register_membership_jobs", "router"]
