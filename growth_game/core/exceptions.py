from fastapi import HTTPException, status


class ForbiddenError(HTTPException):
    """Raised when user lacks permission to access a resource."""

    def __init__(self, message: str = "Not authorized to access this resource"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=message,
        )


# ---------------------------------------------------------------------------
# Ledger errors
#
# Raised by the domain layer and rendered by the app-level exception handler
# as {"success": false, "error": ..., "code": ...}. They are not
# HTTPExceptions so the domain stays usable outside a request.
# ---------------------------------------------------------------------------


class LedgerError(Exception):
    """Base class for referral ledger failures."""

    code = "ledger_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_result(self) -> dict[str, object]:
        return {"success": False, "error": self.message, "code": self.code}


class ReferralNotFoundError(LedgerError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, referral_id: object):
        super().__init__(f"Referral {referral_id} not found")
        self.referral_id = referral_id


class ProfileNotFoundError(LedgerError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, profile_id: object):
        super().__init__(f"Profile {profile_id} not found")
        self.profile_id = profile_id


class InvalidPlanError(LedgerError):
    code = "invalid_plan"

    def __init__(self, plan_id: str):
        super().__init__(f"Unknown reward plan '{plan_id}'")
        self.plan_id = plan_id


class AlreadyConvertedError(LedgerError):
    code = "already_converted"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, referral_id: object):
        super().__init__(f"Referral {referral_id} is already converted")
        self.referral_id = referral_id


class InvalidTransitionError(LedgerError):
    code = "invalid_transition"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, from_status: str, action: str):
        super().__init__(f"Cannot {action} a referral with status '{from_status}'")
        self.from_status = from_status
        self.action = action


class ReferralCycleError(LedgerError):
    code = "referral_cycle"

    def __init__(self, referral_id: object, lead_id: object):
        super().__init__(f"Linking {referral_id} to lead {lead_id} would create a referral cycle")


class WriteError(LedgerError):
    code = "write_error"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, message: str = "Could not persist the change, please retry"):
        super().__init__(message)
