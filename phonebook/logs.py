import json, logging, time, uuid, datetime as dt
from typing import Optional

logger = logging.getLogger("phonebook.oplog")


class LogContext:
    def __init__(self, action: str, user: str = "api"):
        self.action = action
        self.user = user
        self.request_id = str(uuid.uuid4())
        self.start = time.perf_counter()
        self.payload = None
        self.entity_type = None
        self.entity_id = None

    def set_entity(self, etype: str, eid):
        self.entity_type = etype
        self.entity_id = str(eid)

    def set_payload(self, obj): self.payload = obj

    def record(self, result: str = "OK", err: Optional[str] = None) -> dict:
        elapsed_ms = int((time.perf_counter() - self.start) * 1000)
        return {
            "ts": dt.datetime.now(dt.timezone.utc).isoformat(),
            "user": self.user,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "request_id": self.request_id,
            "payload": self.payload,
            "result": result,
            "err_msg": err,
            "latency_ms": elapsed_ms,
        }

    def write(self, result: str = "OK", err: Optional[str] = None):
        rec = self.record(result, err)
        level = logging.INFO if result == "OK" else logging.WARNING
        logger.log(level, json.dumps(rec, ensure_ascii=False))
        return rec
