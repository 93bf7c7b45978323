"""
Entitlement Evaluator for the Course Storefront
Decides whether a user may view or complete a content unit
"""

import logging

from models import Ownership

logger = logging.getLogger('EntitlementEvaluator')


class EntitlementEvaluator:
    """Pure view/complete decisions over already-fetched facts"""

    @staticmethod
    def can_view(is_authenticated: bool, owns_course: bool, unit) -> bool:
        """
        Free preview units are open to everyone. Anything else needs a
        logged-in user who owns the course.

        Ownership is ignored for anonymous sessions, whatever the caller
        passes, so stale ownership data can never unlock paid content.
        """
        if unit.is_free_preview:
            return True
        if not is_authenticated:
            return False
        return bool(owns_course)

    @staticmethod
    def can_complete(is_authenticated: bool, owns_course: bool, unit) -> bool:
        # Completion uses the same predicate as viewing
        return EntitlementEvaluator.can_view(is_authenticated, owns_course, unit)

    @staticmethod
    def evaluate_for_user(user, unit) -> bool:
        """Convenience wrapper resolving ownership for a User (or None)"""
        if user is None:
            return EntitlementEvaluator.can_view(False, False, unit)
        owns = Ownership.is_owned(user.id, unit.course_code)
        allowed = EntitlementEvaluator.can_view(True, owns, unit)
        if not allowed:
            logger.debug(f"Access denied: user {user.id} -> unit {unit.id}")
        return allowed
