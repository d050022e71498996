from uuid import UUID


class JobError(RuntimeError):
    error_code: str = "job_error"


class JobNotFoundError(JobError):
    error_code = "job_not_found"

    def __init__(self, job_id: UUID | str) -> None:
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class JobStateError(JobError):
    error_code = "job_invalid_state"

    def __init__(self, job_id: UUID | str, status: str, allowed: tuple[str, ...]) -> None:
        super().__init__(
            f"Job {job_id} is '{status}'; operation requires one of: {', '.join(allowed)}"
        )
        self.job_id = job_id
        self.status = status
        self.allowed = allowed


class PermanentJobError(JobError):
    """Raised by a handler when retrying cannot help (bad payload, missing upstream record).

    The worker dead-letters the job on the first occurrence instead of scheduling a backoff retry.
    """

    error_code = "job_permanent_failure"
