"""
Grid service exceptions
"""


class GridAccessDeniedError(PermissionError):
    """The procedure is not registered, inactive, or not allowed for the caller's roles."""

    def __init__(self, procedure_name: str, message: str = "Access denied to this data"):
        self.procedure_name = procedure_name
        super().__init__(message)


class InvalidProcedureNameError(ValueError):
    """The procedure name does not follow the sp_Grid_ naming pattern."""

    def __init__(self, procedure_name: str):
        self.procedure_name = procedure_name
        super().__init__(f"Invalid procedure name: {procedure_name}")


class InvalidGridRequestError(ValueError):
    """The request is malformed (bad filter JSON, unknown dropdown, bad identifiers)."""
