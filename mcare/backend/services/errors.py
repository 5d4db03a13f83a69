# --- Service layer exception classes ---

class ServiceError(Exception):
    """General exception class for the service layer."""
    pass


class InvalidInputError(ServiceError):
    pass


class AuthenticationError(ServiceError):
    """Wrong email/password combination."""
    pass


# --- Missing entities ---

class NotFoundError(ServiceError):
    """The addressed entity does not exist."""
    pass


class UnknownUserError(NotFoundError):
    pass


class UnknownGroupError(NotFoundError):
    pass


class UnknownMemberError(ServiceError):
    """One or more school ids in a member list do not resolve to a user."""
    pass


# --- Invariant violations ---

class DuplicateNameError(ServiceError):
    pass


class DuplicateAccountError(ServiceError):
    """Email, username or school id is already taken."""
    pass


class DuplicateDutyForDayError(ServiceError):
    pass


class AlreadyMarkedTodayError(ServiceError):
    pass


class AlreadyGroupedError(ServiceError):
    pass


class NotAMemberError(ServiceError):
    pass
