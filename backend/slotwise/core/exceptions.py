class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class ResourceNotFoundError(AppError):
    """Raised when a requested resource is not found."""
    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} with id {resource_id} not found",
            status_code=404,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )

class SessionNotFoundError(ResourceNotFoundError):
    """Raised when a tab id does not name an open editing session."""
    def __init__(self, tab_id: str):
        super().__init__("Session", tab_id)

class InvalidCellError(AppError):
    """Raised when a day or slot is not part of the grid's calendar."""
    def __init__(self, day: str, slot: str):
        super().__init__(
            f"{day} / {slot} is not a cell of this timetable",
            status_code=422,
            details={"day": day, "slot": slot},
        )

class UnsavedChangesError(AppError):
    """Raised when closing a session that still holds unsaved edits."""
    def __init__(self, tab_id: str, critical_conflicts: int = 0):
        super().__init__(
            f"Session {tab_id} has unsaved changes",
            status_code=409,
            details={"tab_id": tab_id, "critical_conflicts": critical_conflicts},
        )

class SuggestionNotApplicableError(AppError):
    """Raised when a suggestion no longer matches the grid it targets."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=409, details=details)

class PersistenceUnavailableError(AppError):
    """Raised when the timetable store cannot be reached."""
    def __init__(self, message: str = "Timetable storage is unavailable"):
        super().__init__(message, status_code=503)

class IndexInvariantError(AppError):
    """Raised when a conflict index disagrees with the grid it was built from."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=500, details=details)

class InvalidSessionNameError(AppError):
    """Raised when a tab name is blank, too long or already taken."""
    def __init__(self, name: str, reason: str):
        super().__init__(reason, status_code=422, details={"name": name})

class IncompleteTimetableIdentityError(AppError):
    """Raised when saving a session whose semester/branch/batch/type is not fully selected."""
    def __init__(self, missing: list[str]):
        super().__init__(
            "Select semester, branch, batch and type before saving",
            status_code=422,
            details={"missing": missing},
        )
