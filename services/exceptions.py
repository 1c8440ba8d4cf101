from typing import List, Optional


class SoufraError(Exception):
    """Base class for back-office domain errors."""


class ValidationError(SoufraError):
    pass


class MissingRequiredOption(ValidationError):
    def __init__(self, group_names: List[str]):
        self.group_names = list(group_names)
        super().__init__(f"Please select options for: {', '.join(self.group_names)}")


class TooManyOptions(ValidationError):
    def __init__(self, group_name: str, max_selection: int):
        self.group_name = group_name
        self.max_selection = max_selection
        super().__init__(f"At most {max_selection} choice(s) allowed for: {group_name}")


class InvalidStatusTransition(ValidationError):
    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Invalid status transition from {current} to {requested}")


class NotFoundError(SoufraError):
    pass


class PersistenceError(SoufraError):
    pass


class PartialWriteError(PersistenceError):
    """The order header was written but its line items were not."""

    def __init__(self, order_id: int, message: Optional[str] = None):
        self.order_id = order_id
        super().__init__(message or f"Order {order_id} was saved without its items")


class AuthorizationError(SoufraError):
    pass
