from contextvars import ContextVar

_request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
_job_id_ctx: ContextVar[str | None] = ContextVar("job_id", default=None)
_job_type_ctx: ContextVar[str | None] = ContextVar("job_type", default=None)
_tenant_id_ctx: ContextVar[str | None] = ContextVar("tenant_id", default=None)


def set_request_id(request_id: str | None) -> object:
    return _request_id_ctx.set(request_id)


def get_request_id() -> str | None:
    return _request_id_ctx.get()


def reset_request_id(token: object) -> None:
    _request_id_ctx.reset(token)


def bind_job_context(*, job_id: str | None, job_type: str | None, tenant_id: str | None) -> tuple[object, object, object]:
    return (
        _job_id_ctx.set(job_id),
        _job_type_ctx.set(job_type),
        _tenant_id_ctx.set(tenant_id),
    )


def reset_job_context(tokens: tuple[object, object, object]) -> None:
    job_token, job_type_token, tenant_token = tokens
    _tenant_id_ctx.reset(tenant_token)
    _job_type_ctx.reset(job_type_token)
    _job_id_ctx.reset(job_token)


def get_job_id() -> str | None:
    return _job_id_ctx.get()


def get_job_type() -> str | None:
    return _job_type_ctx.get()


def get_tenant_id() -> str | None:
    return _tenant_id_ctx.get()
