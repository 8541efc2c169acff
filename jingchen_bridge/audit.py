import json, time, os
from jingchen_bridge import env


def audit(event: str, payload: dict):
    path = env.AUDIT_LOG_PATH
    if not path:
        return
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    record = {
        "ts": time.time(),
        "bridge_id": env.BRIDGE_ID,
        "event": event,
        "payload": payload,
    }
    with open(path, "a", encoding="utf-8") as f:
        f.write(json.dumps(record, ensure_ascii=False) + "\n")
