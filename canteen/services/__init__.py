"""
Business logic services.
Contains service layer implementations for the entitlement and token engine.
"""

from .member_service import MemberService
from .organization_service import OrganizationService
from .package_service import PackageService
from .selection_service import SelectionService
from .token_service import TokenService

__all__ = [
    "MemberService",
    "OrganizationService",
    "PackageService",
    "SelectionService",
    "TokenService",
]
