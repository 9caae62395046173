class HaseebError(Exception):
    pass


class NotFoundError(HaseebError):
    pass


class ValidationError(HaseebError):
    pass


class NotAuthenticatedError(HaseebError):
    pass


class PersistenceError(HaseebError):
    pass


class AuthorizationError(PersistenceError):
    pass


class StorageQuotaError(PersistenceError):
    pass


class AmbiguousError(HaseebError):
    def __init__(self, ref: str, count: int = 0, sample: list[str] | None = None):
        self.ref = ref
        self.count = count
        self.sample = sample or []
        count_note = f" ({count})" if count else ""
        note = f": {', '.join(self.sample)}" if self.sample else ""
        super().__init__(f"ambiguous ref '{ref}' matches multiple habits{count_note}{note}")
