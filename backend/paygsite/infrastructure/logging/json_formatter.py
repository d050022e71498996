import json
import logging
from datetime import UTC, datetime

from paygsite.infrastructure.logging.context import get_job_id, get_job_type, get_request_id, get_tenant_id


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }
        context = {
            "request_id": get_request_id(),
            "job_id": get_job_id(),
            "job_type": get_job_type(),
            "tenant_id": get_tenant_id(),
        }
        payload.update({key: value for key, value in context.items() if value is not None})
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)
