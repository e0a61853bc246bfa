"""Which admin roles may move a user into which user-tier role"""
from typing import NamedTuple

from coralguard_admin.services.permission_catalog import (
    TOP_USER_ROLE,
    AdminRole,
    UserRole,
    user_role_rank,
)

# moderators may only assign roles up to this rank (user, premium)
_MODERATOR_MAX_RANK = user_role_rank(UserRole.PREMIUM.value)


class TransitionDecision(NamedTuple):
    allowed: bool
    reason: str


class RoleTransitionValidator:
    """Rules, evaluated in order:

    1. super_admin: any transition.
    2. admin: any target except the top user tier (scientist).
    3. moderator: only into the two lowest tiers (user, premium).
    4. everyone else: denied.

    Unknown target roles are always denied. The current role is accepted for
    auditing context but does not affect the decision.
    """

    def evaluate(self, acting_role: str, current_role: str, target_role: str) -> TransitionDecision:
        target_rank = user_role_rank(target_role)
        if target_rank == 0:
            return TransitionDecision(False, f"Unknown user role '{target_role}'")

        if acting_role == AdminRole.SUPER_ADMIN.value:
            return TransitionDecision(True, "super_admin may assign any role")

        if acting_role == AdminRole.ADMIN.value:
            if target_rank < user_role_rank(TOP_USER_ROLE):
                return TransitionDecision(True, "admin may assign roles below the top tier")
            return TransitionDecision(False, f"Only super_admin may assign '{target_role}'")

        if acting_role == AdminRole.MODERATOR.value:
            if target_rank <= _MODERATOR_MAX_RANK:
                return TransitionDecision(True, "moderator may assign the two lowest tiers")
            return TransitionDecision(False, f"Moderators cannot assign '{target_role}'")

        return TransitionDecision(False, f"Role '{acting_role}' cannot change user roles")

    def can_change_role(self, acting_role: str, current_role: str, target_role: str) -> bool:
        return self.evaluate(acting_role, current_role, target_role).allowed
