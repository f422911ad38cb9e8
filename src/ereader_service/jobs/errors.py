class JobError(Exception):
    """Base class for failures captured into a job's settled state."""


class SpawnError(JobError):
    def __init__(self, command: str, cause: BaseException) -> None:
        super().__init__(f"Failed to start process {command!r}: {cause}")
        self.command = command
        self.cause = cause


class JobTimeoutError(JobError):
    def __init__(self, timeout_seconds: float) -> None:
        super().__init__(f"Process timed out after {timeout_seconds:g} seconds.")
        self.timeout_seconds = timeout_seconds


class NonZeroExitError(JobError):
    def __init__(self, code: int) -> None:
        super().__init__(f"Process exited with non-zero code {code}.")
        self.code = code


class JobNotFoundError(LookupError):
    def __init__(self, job_id: str) -> None:
        super().__init__("job not found")
        self.job_id = job_id


class InvalidRequestError(ValueError):
    pass
